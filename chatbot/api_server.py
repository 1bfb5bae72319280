"""
Chatbot API Server - REST API wrapper for the query engine.

This server exposes entity extraction and query execution via HTTP
endpoints so the chat widget can highlight entities and show results.

Run: python chatbot/api_server.py
"""
import os
import sys
import logging
from typing import Any, Dict, Optional, Tuple

# Get parent directory path
PARENT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Add parent directory to path for imports
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from dotenv import load_dotenv
# Load .env from parent directory
load_dotenv(os.path.join(PARENT_DIR, '.env'))

from flask import Flask, request, jsonify
from flask_cors import CORS

from config import ConfigurationError, load_config
from execution import QueryExecutionError
from query_engine import get_query_engine

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app, origins=load_config().cors_origins)


def _read_payload() -> Optional[Dict[str, Any]]:
    """Return the JSON object body, or None when the body is not an object."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    return payload if isinstance(payload, dict) else None


def _read_text(payload: Dict[str, Any], *keys: str) -> Tuple[Optional[str], Optional[str]]:
    """Return (text, user) from the first present key, or (None, None) if invalid."""
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            user = payload.get("userName")
            return value, user if isinstance(user, str) else None
    return None, None


def _execution_error(e: QueryExecutionError):
    logger.exception(f"Query execution failed: {e}")
    return jsonify({"success": False, **e.to_dict()}), 502


def _configuration_error(e: ConfigurationError):
    logger.error(f"Configuration error: {e}")
    return jsonify({"success": False, "error": str(e)}), 503


@app.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok", "service": "query-assistant"})


@app.route("/api/tables", methods=["GET"])
def tables():
    """List the tables queries can target."""
    return jsonify({"tables": get_query_engine().describe_tables()})


@app.route("/api/suggestions", methods=["GET"])
def suggestions():
    """Suggest vocabulary terms for a partial input."""
    query = request.args.get("q", "")
    try:
        limit = int(request.args.get("limit", 10))
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400
    return jsonify({
        "query": query,
        "suggestions": get_query_engine().suggest(query, limit=max(1, min(limit, 50))),
    })


@app.route("/api/extract-entities", methods=["POST"])
def extract_entities():
    """
    Extract entities and, when a table is found, run the query.

    Request body:
        {"text": "laptop stock below 10", "userName": "Ahmed Hassan"}
    """
    payload = _read_payload()
    if payload is None:
        return jsonify({"error": "request body must be a JSON object"}), 400
    text, user = _read_text(payload, "text")
    if text is None:
        return jsonify({"error": "text is required"}), 400

    execute = payload.get("execute", True)
    if not isinstance(execute, bool):
        return jsonify({"error": "execute must be a boolean"}), 400

    engine = get_query_engine()
    try:
        response = engine.process_query(text, current_user=user, execute=execute)
    except QueryExecutionError as e:
        return _execution_error(e)
    except ConfigurationError as e:
        return _configuration_error(e)

    body = response.to_dict()
    return jsonify({
        "success": True,
        "entities": body["entities"],
        "plan": body["plan"],
        "data": body["data"],
        "sqlQuery": body["sqlQuery"],
        "summary": body["summary"],
        "currentUser": body["currentUser"],
        "currentDate": body["currentDate"],
    })


@app.route("/api/chat/query", methods=["POST"])
def chat_query():
    """
    Answer a chat message with data.

    Request body:
        {"message": "my tasks due this week", "userName": "Ahmed Hassan"}
    """
    payload = _read_payload()
    if payload is None:
        return jsonify({"error": "request body must be a JSON object"}), 400
    message, user = _read_text(payload, "message", "text")
    if message is None:
        return jsonify({"error": "message is required"}), 400

    engine = get_query_engine()
    try:
        response = engine.process_query(message, current_user=user)
    except QueryExecutionError as e:
        return _execution_error(e)
    except ConfigurationError as e:
        return _configuration_error(e)

    body = response.to_dict()
    body["success"] = True
    body["response"] = response.summary
    return jsonify(body)


if __name__ == "__main__":
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = config.server_port
    print(f"\n{'='*60}")
    print("Query Assistant API Server")
    print(f"{'='*60}")
    print(f"Running on: http://localhost:{port}")
    print(f"Health check: http://localhost:{port}/api/health")
    print(f"{'='*60}\n")

    app.run(host="0.0.0.0", port=port, debug=False)
