"""
AWS Lambda handler for the Delivery Pricing API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import base64
import binascii
import json
import logging

from delivery_pricing.config import build_processor, get_service_config
from delivery_pricing.errors import PricingError, error_status
from delivery_pricing.output import OutputBuilder

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

config = get_service_config()
ENVIRONMENT = config.environment

# Initialize processor (reused across warm invocations)
processor = build_processor(config)
output_builder = OutputBuilder()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def _response(status_code, payload):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(payload)}


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health
    - GET /api
    - GET /templates
    - POST /calculate
    - GET /history
    - GET /configurations
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    # Route to appropriate handler
    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/calculate" and http_method == "POST":
        return handle_calculate(event)
    elif path == "/templates" and http_method == "GET":
        return handle_templates()
    elif path == "/history" and http_method == "GET":
        return handle_history(event)
    elif path == "/configurations" and http_method == "GET":
        return handle_configurations(event)
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    else:
        return _response(404, {"error": "Not found", "path": path})


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(
        200,
        {
            "status": "ok",
            "message": "Delivery Pricing Calculator API",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": {
                "calculate": "/calculate [POST]",
                "templates": "/templates [GET]",
                "history": "/history [GET]",
                "configurations": "/configurations [GET]",
                "health": "/health [GET]",
            },
        },
    )


def handle_templates():
    """List published pricing templates."""
    snapshots = processor.template_store.list_templates()
    return _response(200, {"templates": [output_builder.build_template(s) for s in snapshots]})


def handle_history(event):
    """Most recent calculations, newest first."""
    params = event.get("queryStringParameters") or {}
    try:
        limit = int(params.get("limit", 50))
    except ValueError:
        return _response(400, {"error": "limit must be an integer", "status": "validation_failed"})

    records = processor.history_sink.list_records(
        template_id=params.get("template_id"),
        user_id=params.get("user_id"),
        limit=max(limit, 0),
    )
    return _response(200, {"history": [output_builder.build_history(r) for r in records]})


def handle_configurations(event):
    """List client configurations, optionally for one client."""
    params = event.get("queryStringParameters") or {}
    configs = processor.client_store.list_configurations(client_id=params.get("client_id"))
    return _response(200, {"configurations": [output_builder.build_client_config(c) for c in configs]})


def handle_calculate(event):
    """Price a delivery through the pricing engine."""
    try:
        # Parse request body
        body = event.get("body", "")
        if isinstance(body, str):
            if not body:
                return _response(400, {"error": "No input data provided", "status": "failed"})
            # Handle base64 encoded body (API Gateway)
            if event.get("isBase64Encoded"):
                body = base64.b64decode(body, validate=True).decode("utf-8")
            input_data = json.loads(body)
        else:
            input_data = body

        # Log request
        template_id = input_data.get("template_id", "Unknown") if isinstance(input_data, dict) else "Unknown"
        logger.info(f"Calculating delivery price with template: {template_id}")

        # Process through engine
        result = processor.calculate_from_dict(
            input_data,
            timeout=config.store_timeout,
            history_enabled=config.history_enabled,
        )

        logger.info(f"Calculation completed for template: {template_id}")

        return _response(200, result)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except (binascii.Error, UnicodeDecodeError) as e:
        logger.error(f"Body decode error: {str(e)}")
        return _response(400, {"error": "Request body is not valid base64-encoded UTF-8", "status": "validation_failed"})

    except PricingError as e:
        # Validation and configuration errors from engine
        status_code, status = error_status(e)
        logger.error(f"Calculation rejected ({status}): {str(e)}")
        return _response(status_code, {"error": str(e), "status": status})

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(
            500,
            {"error": "An unexpected error occurred during processing", "status": "failed"},
        )
