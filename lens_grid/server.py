"""
Local HTTP server exposing the same routes as the Lambda handler.

Run:
  flask --app lens_grid.server run --port 3000
"""
from __future__ import annotations

import logging

from flask import Flask, jsonify, request
from flask_cors import CORS

from .lambda_handler import dispatch

logger = logging.getLogger(__name__)


def _proxy(route: str):
    body = request.get_json(silent=True) if request.method == "POST" else None
    if request.method == "POST" and request.data and body is None:
        return jsonify({"error": "ValidationError", "message": "Request body must be valid JSON"}), 400
    if body is not None and not isinstance(body, dict):
        return jsonify({"error": "ValidationError", "message": "Request body must be a JSON object"}), 400
    status, result = dispatch(route, request.method, request.args.to_dict(flat=False), body)
    return jsonify(result), status


def create_app() -> Flask:
    app = Flask(__name__)
    CORS(app)

    @app.route("/api/gridcell", methods=["GET", "POST"])
    def gridcell():
        return _proxy("/api/gridcell")

    @app.route("/api/search", methods=["POST"])
    def search():
        return _proxy("/api/search")

    @app.route("/api/lenses", methods=["GET"])
    def lenses():
        return _proxy("/api/lenses")

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_app().run(debug=True, port=3000)
