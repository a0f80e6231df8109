from flask import Flask, jsonify, request
from flask_cors import CORS
from dotenv import load_dotenv

from zerogkit import ChatOptions, SyncClient, ZeroGConfig
from zerogkit.client.exceptions import InsufficientFundsError, ValidationError, ZeroGError


def _error(e: ZeroGError):
    if isinstance(e, ValidationError):
        status = 400
    elif isinstance(e, InsufficientFundsError):
        status = 402
    else:
        status = 502
    return jsonify({"success": False, "error": str(e), "kind": e.kind.value}), status


def create_app(client) -> Flask:
    """Build the HTTP app around a `SyncClient` (or anything with the same methods)."""
    app = Flask(__name__)
    CORS(app)

    # Health check
    @app.route("/")
    def home():
        return jsonify({"status": "0G inference gateway - LIVE", "address": client.address})

    # Simple AI chat
    @app.route("/ask", methods=["POST"])
    def ask_ai():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "JSON object body required"}), 400
        prompt = data.get("prompt")

        if not prompt:
            return jsonify({"error": "prompt required"}), 400

        options = ChatOptions(
            model=data.get("model"),
            provider=data.get("provider"),
            temperature=data.get("temperature"),
            max_tokens=data.get("max_tokens"),
        )
        try:
            result = client.chat_advanced(prompt, options)
        except ZeroGError as e:
            return _error(e)

        return jsonify(
            {
                "success": True,
                "response": result.content,
                "model": result.model,
                "provider": result.provider,
                "request_id": result.request_id,
                "tokens_used": result.tokens_used,
            }
        )

    @app.route("/balance")
    def balance():
        try:
            total = client.get_balance()
            available = client.get_available_balance()
        except ZeroGError as e:
            return _error(e)
        return jsonify({"balance": str(total), "available": str(available)})

    @app.route("/services")
    def services():
        try:
            listed = client.list_services()
        except ZeroGError as e:
            return _error(e)
        return jsonify(
            {
                "services": [
                    {
                        "provider": s.provider,
                        "model": s.model,
                        "url": s.url,
                        "service_type": s.service_type,
                        "input_price": s.input_price,
                        "output_price": s.output_price,
                        "verifiability": s.verifiability,
                    }
                    for s in listed
                ]
            }
        )

    return app


def main():
    # Load environment
    load_dotenv()
    client = SyncClient(ZeroGConfig.from_env())
    app = create_app(client)
    try:
        app.run(host="0.0.0.0", port=8000)
    finally:
        client.close()


if __name__ == "__main__":
    main()
