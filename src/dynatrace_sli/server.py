"""
Webhook server receiving Keptn CloudEvents.

Each event is processed to completion before the response is returned,
so the distributor in front of the service sees the outcome of the
retrieval in the HTTP status code.
"""

import logging
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request

from dynatrace_sli.config import ServiceConfig
from dynatrace_sli.errors import SLIServiceError, UnknownEventTypeError
from dynatrace_sli.events import InvalidEventError, parse_event
from dynatrace_sli.service import SLIRetrievalService

logger = logging.getLogger(__name__)


class WebhookServer:
    """
    Flask-based CloudEvent receiver.

    Responses:
        200 - event processed, or ignored because it selects another SLI provider
        400 - body is not a CloudEvent, or the event type is unknown
        500 - retrieval failed fatally; no completion event was sent
    """

    def __init__(
        self,
        config: ServiceConfig,
        service: SLIRetrievalService,
        host: str = "0.0.0.0",
        port: Optional[int] = None,
        path: Optional[str] = None,
    ):
        self.config = config
        self.service = service
        self.host = host
        self.port = port or config.rcv_port
        self.path = path or config.rcv_path

        self.app = Flask(__name__)
        self._setup_routes()

    def _setup_routes(self):
        """Set up Flask routes."""

        @self.app.route("/health", methods=["GET"])
        def health():
            return jsonify({
                "status": "healthy",
                "service": self.config.service_name,
                "timestamp": datetime.now().isoformat(),
            })

        @self.app.route(self.path, methods=["POST"], endpoint="receive_event")
        def receive_event():
            body = request.get_json(force=True, silent=True)

            try:
                event = parse_event(request.headers, body)
            except InvalidEventError as e:
                logger.error(f"Failed to parse cloudevent: {e}")
                return jsonify({"status": "error", "error": str(e)}), 400

            try:
                result = self.service.handle_event(event)
            except UnknownEventTypeError as e:
                logger.warning(str(e))
                return jsonify({"status": "error", "error": str(e)}), 400
            except InvalidEventError as e:
                logger.error(f"Invalid {event.type} event {event.id}: {e}")
                return jsonify({"status": "error", "error": str(e)}), 400
            except SLIServiceError as e:
                return jsonify({
                    "status": "error",
                    "kind": e.kind.value,
                    "error": str(e),
                }), 500

            if result is None:
                return jsonify({"status": "ignored", "id": event.id})

            return jsonify({
                "status": "success",
                "id": event.id,
                "indicators": len(result.indicator_values),
                "failed": result.failed_metrics,
            })

    def run(self, debug: bool = False):
        """Start the webhook server."""
        logger.info(f"Starting Dynatrace SLI service on {self.host}:{self.port}{self.path}")
        self.app.run(host=self.host, port=self.port, debug=debug, threaded=False)
