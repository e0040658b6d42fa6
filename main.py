from flask import Flask, request, jsonify
from flask_cors import CORS
from delivery_pricing import CalculationProcessor
from delivery_pricing.config import build_processor, get_service_config
from delivery_pricing.errors import PricingError, error_status
from delivery_pricing.output import OutputBuilder
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

config = get_service_config()
output_builder = OutputBuilder()


def create_app(processor: CalculationProcessor = None) -> Flask:
    """Build the Flask app around a processor (the configured one by default)."""
    app = Flask(__name__)

    # Enable CORS for all routes so browser calculators can call the API
    CORS(app)

    processor = processor or build_processor(config)

    @app.route("/api", methods=["GET"])
    def api_info():
        """API information endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Delivery Pricing Calculator API",
            "version": "1.0",
            "environment": config.environment,
            "endpoints": {
                "calculate": "/calculate [POST]",
                "templates": "/templates [GET]",
                "history": "/history [GET]",
                "configurations": "/configurations [GET]",
                "health": "/health [GET]"
            }
        }), 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for monitoring"""
        return jsonify({"status": "healthy", "environment": config.environment}), 200

    @app.route("/templates", methods=["GET"])
    def templates():
        """List published pricing templates"""
        snapshots = processor.template_store.list_templates()
        return jsonify({
            "templates": [output_builder.build_template(s) for s in snapshots]
        }), 200

    @app.route("/calculate", methods=["POST"])
    def calculate():
        """
        Price a delivery through the pricing engine
        """
        try:
            # Get input data
            input_data = request.get_json(force=True, silent=True)

            if not input_data:
                return jsonify({
                    "error": "No input data provided",
                    "status": "failed"
                }), 400

            # Log request
            template_id = input_data.get("template_id", input_data.get("templateId", "Unknown")) \
                if isinstance(input_data, dict) else "Unknown"
            logger.info(f"Calculating delivery price with template: {template_id}")

            # Process through engine
            result = processor.calculate_from_dict(
                input_data,
                timeout=config.store_timeout,
                history_enabled=config.history_enabled,
            )

            logger.info(
                f"Calculated {template_id}: customer {result['customer_charges']['total']}, "
                f"driver {result['driver_payments']['total']}"
            )

            return jsonify(result), 200

        except PricingError as e:
            # Validation and configuration errors from engine
            status_code, status = error_status(e)
            logger.error(f"Calculation rejected ({status}): {str(e)}")
            return jsonify({
                "error": str(e),
                "status": status
            }), status_code

        except Exception as e:
            # Unexpected errors
            logger.error(f"Calculation error: {str(e)}", exc_info=True)
            return jsonify({
                "error": "An unexpected error occurred during calculation",
                "status": "failed"
            }), 500

    @app.route("/history", methods=["GET"])
    def history():
        """Most recent calculations, newest first"""
        try:
            limit = int(request.args.get("limit", 50))
        except ValueError:
            return jsonify({
                "error": "limit must be an integer",
                "status": "validation_failed"
            }), 400

        records = processor.history_sink.list_records(
            template_id=request.args.get("template_id"),
            user_id=request.args.get("user_id"),
            limit=max(limit, 0),
        )
        return jsonify({
            "history": [output_builder.build_history(r) for r in records]
        }), 200

    @app.route("/configurations", methods=["GET"])
    def configurations():
        """List client configurations, optionally for one client"""
        configs = processor.client_store.list_configurations(client_id=request.args.get("client_id"))
        return jsonify({
            "configurations": [output_builder.build_client_config(c) for c in configs]
        }), 200

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=config.port, debug=False)
