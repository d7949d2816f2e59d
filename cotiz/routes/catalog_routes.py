from flask import Blueprint, jsonify

from cotiz.catalog import catalog_payload
from cotiz.ui_strings import frontend_bundle


catalog_bp = Blueprint("catalog", __name__)


@catalog_bp.route("/api/catalogo", methods=["GET"])
def catalog():
    return jsonify({**catalog_payload(), "ui": frontend_bundle()})
