from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Cotiz",
    "invitation_letter": "Carta convite",
    "quote": "Cotacao",
    "quick_response": "Resposta rapida",
    "supplier": "Fornecedor",
    "registration": "Cadastro de fornecedor",
    "eligibility": "Elegibilidade",
    "escrow": "Garantia",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "carta": [
        {
            "key": "draft",
            "label": "Rascunho",
            "description": "Carta salva e ainda nao enviada aos fornecedores.",
        },
        {
            "key": "sent",
            "label": "Enviada",
            "description": "Carta enviada, aguardando respostas.",
        },
        {
            "key": "cancelled",
            "label": "Cancelada",
            "description": "Carta cancelada pelo cliente.",
        },
    ],
    "elegibilidade": [
        {
            "key": "eligible",
            "label": "Elegivel",
            "description": "Todos os documentos obrigatorios validados.",
        },
        {
            "key": "pending",
            "label": "Pendente",
            "description": "Documentos enviados aguardando validacao.",
        },
        {
            "key": "ineligible",
            "label": "Nao elegivel",
            "description": "Documentos obrigatorios ausentes, rejeitados ou vencidos.",
        },
        {
            "key": "not_checked",
            "label": "Nao verificado",
            "description": "Nao foi possivel verificar os documentos agora.",
        },
    ],
    "documento": [
        {"key": "missing", "label": "Ausente", "description": "Documento nao enviado."},
        {"key": "pending", "label": "Pendente", "description": "Documento aguardando validacao."},
        {"key": "validated", "label": "Validado", "description": "Documento validado."},
        {"key": "rejected", "label": "Rejeitado", "description": "Documento rejeitado na validacao."},
        {"key": "expired", "label": "Vencido", "description": "Documento com validade expirada."},
    ],
    "resposta_convite": [
        {"key": "pending", "label": "Sem resposta", "description": "Fornecedor ainda nao respondeu."},
        {"key": "accepted", "label": "Aceito", "description": "Fornecedor aceitou participar."},
        {"key": "declined", "label": "Recusado", "description": "Fornecedor recusou o convite."},
        {"key": "no_interest", "label": "Sem interesse", "description": "Fornecedor sem interesse no servico."},
    ],
    "pagamento": [
        {"key": "pending", "label": "Pendente", "description": "Pagamento aguardando confirmacao."},
        {"key": "in_escrow", "label": "Em garantia", "description": "Valor retido ate a confirmacao da entrega."},
        {"key": "completed", "label": "Liberado", "description": "Valor repassado ao fornecedor."},
        {"key": "failed", "label": "Falhou", "description": "Falha no processamento do pagamento."},
        {"key": "refunded", "label": "Estornado", "description": "Valor devolvido ao cliente."},
    ],
}


UI_TEXTS: Dict[str, str] = {
    "label.letter_number": "Numero da carta",
    "label.letter_title": "Titulo",
    "label.category": "Categoria",
    "label.deadline": "Prazo",
    "label.mandatory_documents": "Documentos obrigatorios",
    "label.status_summary": "Resumo de status",
    "label.supplier": "Fornecedor",
    "label.score": "Pontuacao",
    "label.document": "Documento",
    "label.generated_at": "Gerado em",
    "report.eligibility_title": "Relatorio de Elegibilidade de Fornecedores",
    "registration.step.1": "Identificacao",
    "registration.step.2": "Endereco",
    "registration.step.3": "Atuacao",
    "registration.step.4": "Recebimento",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "letter_sent": "Carta enviada!",
        "letter_saved_draft": "Carta salva como rascunho.",
        "letter_resent": "Carta reenviada.",
        "letter_cancelled": "Carta cancelada.",
        "quick_response_sent": "Proposta enviada com sucesso!",
        "registration_completed": "Cadastro concluido com sucesso!",
        "invitation_response_saved": "Resposta registrada. Obrigado!",
        "escrow_released": "Pagamento liberado ao fornecedor.",
    },
    "warning": {
        "required_documents_replaced": "Os documentos exigidos foram substituidos pela sugestao da categoria.",
        "letter_created_send_failed": "Carta criada, mas houve erro no envio.",
        "registration_login_required": "Cadastro concluido, mas nao foi possivel entrar automaticamente. Faca login manualmente.",
        "cep_not_found": "CEP nao encontrado. Preencha o endereco manualmente.",
    },
    "error": {
        "unexpected_error": "Nao foi possivel concluir a operacao.",
        "action_invalid": "Acao invalida.",
        "validation_error": "Dados invalidos. Revise os campos.",
        "permission_denied": "Voce nao tem permissao para esta acao.",
        "auth_required": "Autenticacao necessaria.",
        "invalid_credentials": "Credenciais invalidas. Tente novamente.",
        "not_found": "Registro nao encontrado.",
        "action_not_allowed_for_status": "Acao nao permitida para o status atual.",
        "gateway_temporarily_unavailable": "Servico temporariamente indisponivel. Tente novamente.",
        "gateway_rejected": "A solicitacao foi recusada pelo servico externo.",
        "client_required": "Cliente nao identificado.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        # carta convite
        "letter_quote_required": "Selecione uma cotacao.",
        "letter_category_required": "Selecione uma categoria.",
        "letter_required_fields": "Preencha todos os campos obrigatorios.",
        "letter_recipients_required": "Selecione fornecedores ou adicione e-mails diretos.",
        "letter_create_failed": "Erro ao criar carta.",
        "letter_send_failed": "Erro ao enviar carta.",
        "letter_not_found": "Carta convite nao encontrada.",
        "attachment_too_large": "Arquivo excede o limite de 10MB.",
        "attachment_type_not_allowed": "Tipo de arquivo nao permitido.",
        "attachment_upload_failed": "Erro no upload de anexos.",
        "invalid_category": "Categoria invalida.",
        "invalid_document_type": "Tipo de documento invalido.",
        "invalid_mode": "Modo de carta invalido.",
        "eligibility_unavailable": "Nao foi possivel verificar a elegibilidade.",
        # token / resposta rapida
        "token_invalid": "Link invalido ou expirado.",
        "token_expired": "Este link expirou. Solicite um novo convite ao cliente.",
        "token_already_used": "Uma proposta ja foi enviada por este link.",
        "supplier_contact_required": "Informe nome e e-mail do fornecedor.",
        "visit_date_required": "Agendamento da visita tecnica e obrigatorio para esta cotacao.",
        "visit_date_after_deadline": "A visita deve ser agendada ate {deadline}.",
        "prices_required": "Informe o preco de pelo menos um item.",
        "submission_in_progress": "Envio em andamento. Aguarde.",
        "quick_response_upload_failed": "Erro no upload. Nao foi possivel enviar o arquivo.",
        "quick_response_failed": "Erro ao enviar proposta.",
        # convite publico
        "invitation_cancelled": "Esta carta convite foi cancelada pelo cliente.",
        "invitation_already_answered": "Este convite ja foi respondido.",
        "invitation_response_invalid": "Resposta invalida.",
        "invitation_response_failed": "Erro ao registrar resposta.",
        # cadastro
        "registration_link_expired": "Link de cadastro expirado. Solicite um novo convite.",
        "registration_failed": "Erro ao cadastrar.",
        "registration_step_invalid": "Etapa de cadastro invalida.",
        "document_number_invalid": "Documento invalido. CPF deve ter 11 digitos e CNPJ 14 digitos.",
        "whatsapp_required": "Informe o WhatsApp.",
        "field_required": "Campo obrigatorio.",
        "state_invalid": "UF deve ter 2 letras.",
        "cep_invalid": "CEP deve ter 8 digitos.",
        "cep_lookup_failed": "Nao foi possivel consultar o CEP.",
        "cep_not_found": "CEP nao encontrado.",
        "specialties_required": "Selecione pelo menos uma especialidade.",
        "specialties_limit": "Selecione no maximo 10 especialidades.",
        "specialty_too_long": "Especialidade deve ter no maximo 50 caracteres.",
        "description_too_long": "Descricao deve ter no maximo 500 caracteres.",
        "payment_method_invalid": "Selecione PIX ou conta bancaria.",
        "pix_key_required": "Informe a chave PIX.",
        "pix_key_invalid": "Chave PIX invalida.",
        "account_type_invalid": "Tipo de conta invalido.",
        "bank_code_invalid": "Banco invalido.",
        # financeiro
        "liquidity_load_failed": "Erro ao carregar dados de liquidez.",
        "escrow_release_failed": "Erro ao liberar pagamento.",
        "payment_not_in_escrow": "Pagamento nao esta em garantia.",
        "platform_balance_failed": "Erro ao consultar saldo da plataforma.",
    },
    "confirm": {
        "cancel_letter": "Deseja cancelar esta carta convite? Os fornecedores nao poderao mais responder.",
        "release_escrow": "Confirma a liberacao do pagamento ao fornecedor?",
        "replace_required_documents": "Trocar a categoria substitui os documentos exigidos. Continuar?",
    },
}


def status_items_for_group(group: str) -> List[Dict[str, str]]:
    return list(STATUS_GROUPS.get(group, []))


def status_label(group: str, key: str | None, default: str | None = None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    if default is not None:
        return default
    return str(key or "")


def get_ui_text(key: str, default: str | None = None) -> str:
    if key in UI_TEXTS:
        return UI_TEXTS[key]
    if default is not None:
        return default
    return key


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def warning_message(key: str, default: str | None = None) -> str:
    return get_message("warning", key, default)


def confirm_message(key: str, default: str | None = None) -> str:
    return get_message("confirm", key, default)


def frontend_bundle() -> Dict[str, object]:
    return {
        "terms": dict(FRIENDLY_TERMS),
        "status_groups": {group: status_items_for_group(group) for group in STATUS_GROUPS},
        "confirm": dict(MESSAGES["confirm"]),
    }
