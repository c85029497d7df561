import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from sonosync.crosscutting.config import Settings
from sonosync.crosscutting.logging import log_error
from sonosync.domain.entities import ResolvedCredentials
from sonosync.domain.errors import (
    AuthenticationMissing, PartialTransfer, ProviderError, SonoSyncError,
    TransferCancelled, UnsupportedPlatform,
)
from sonosync.infrastructure.providers.registry import build_provider
from sonosync.interfaces.service import ProviderRegistry, TransferRequest, transfer


class BadRequest(ValueError):
    """The request body is missing a field or has the wrong shape."""


def _error_status(error: SonoSyncError) -> int:
    if isinstance(error, UnsupportedPlatform):
        return 400
    if isinstance(error, AuthenticationMissing):
        return 401
    if isinstance(error, ProviderError):
        return 502
    if isinstance(error, TransferCancelled):
        return 503
    return 500


def parse_transfer_body(body: Any) -> TransferRequest:
    """Build a TransferRequest from the JSON body of POST /transfer."""
    if not isinstance(body, dict):
        raise BadRequest("request body must be a JSON object")

    missing = [key for key in ('source', 'target', 'playlistId', 'name') if not body.get(key)]
    if missing:
        raise BadRequest(f"missing required fields: {', '.join(missing)}")

    tokens = body.get('tokens') or {}
    if not isinstance(tokens, dict):
        raise BadRequest("tokens must be an object mapping platform to token")

    return TransferRequest(
        source=str(body['source']),
        destination=str(body['target']),
        playlist_id=str(body['playlistId']),
        name=str(body['name']),
        credentials=ResolvedCredentials.from_mapping(tokens),
        dry_run=bool(body.get('dryRun', False)),
    )


class HTTPServer:
    """HTTP server for SonoSync with health checks and the transfer endpoint."""

    def __init__(self, host: str = 'localhost', port: int = 3000, debug: bool = False,
                 registry: ProviderRegistry = build_provider,
                 settings: Optional[Settings] = None):
        self.host = host
        self.port = port
        self.debug = debug
        self.registry = registry
        self.settings = settings or Settings.from_env()
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'SonoSync HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'transfer': '/transfer'
                }
            }), 200

        @self.app.route('/transfer', methods=['POST'])
        def transfer_playlist():
            body, status = self._handle_transfer(request.get_json(silent=True))
            return jsonify(body), status

    def _handle_transfer(self, body: Any) -> Tuple[Dict[str, Any], int]:
        try:
            transfer_request = parse_transfer_body(body)
            report = transfer(transfer_request, registry=self.registry, settings=self.settings)
        except BadRequest as e:
            return {'error': 'Invalid request', 'details': str(e)}, 400
        except PartialTransfer as e:
            log_error(self.logger, 'Transfer finished partially', e)
            return {'error': str(e), 'report': e.report.to_json()}, 207
        except SonoSyncError as e:
            log_error(self.logger, 'Transfer failed', e)
            return {'error': str(e), 'type': type(e).__name__}, _error_status(e)

        return {'report': report.to_json()}, 200

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting SonoSync HTTP server on {self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(registry: ProviderRegistry = build_provider,
               settings: Optional[Settings] = None) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(registry=registry, settings=settings)
    return server.app


if __name__ == '__main__':
    server = HTTPServer()
    server.run()
