import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Self

from src.delivery.signer import DELIVERY_HEADER, EVENT_HEADER, SIGNATURE_HEADER
from src.utils.crypto import verify_signature


class _WebhookHandler(BaseHTTPRequestHandler):
    """HTTP request handler for receiving webhooks."""

    def _reply(self, code: int, body: dict | None = None) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        if body is not None:
            self.wfile.write(json.dumps(body).encode())

    def do_POST(self):
        content_length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(content_length)

        server_config = self.server.config  # type: ignore[attr-defined]

        with server_config["lock"]:
            server_config["request_count"] += 1
            if server_config["response_sequence"]:
                code = server_config["response_sequence"].pop(0)
            else:
                code = server_config["response_code"]

        # Simulate slow response
        if server_config["response_delay"] > 0:
            time.sleep(server_config["response_delay"])

        try:
            envelope = json.loads(body)
        except (json.JSONDecodeError, ValueError):
            self._reply(400, {"error": "invalid JSON"})
            return

        missing = [f for f in ("event", "payload", "timestamp") if f not in envelope]
        if missing:
            self._reply(400, {"error": f"missing fields: {missing}"})
            return

        # Signature is computed over the raw body, never the re-serialized JSON
        if server_config["signature_secret"]:
            sig = self.headers.get(SIGNATURE_HEADER, "")
            if not sig:
                self._reply(401, {"error": "missing signature"})
                return
            if not verify_signature(body, server_config["signature_secret"], sig):
                self._reply(401, {"error": "invalid signature"})
                return

        delivery_id = self.headers.get(DELIVERY_HEADER, "")
        if not 200 <= code < 300:
            self._reply(code, {"error": "simulated failure"})
            return

        with server_config["lock"]:
            if server_config["idempotency_enabled"] and delivery_id in server_config["processed_ids"]:
                duplicate = True
            else:
                duplicate = False
                server_config["received_events"].append({
                    "delivery_id": delivery_id,
                    "event": self.headers.get(EVENT_HEADER, ""),
                    "envelope": envelope,
                    "raw_body": body,
                    "headers": dict(self.headers),
                })
                if delivery_id:
                    server_config["processed_ids"].add(delivery_id)

        self._reply(code, {"status": "already_processed" if duplicate else "ok"})

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class WebhookReceiverServer:
    """Configurable local HTTP endpoint that plays the role of a webhook subscriber."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0, secret: str | None = None):
        self._host = host
        self._port = port
        self._config = {
            "response_code": 200,
            "response_sequence": [],
            "response_delay": 0,
            "signature_secret": secret,
            "idempotency_enabled": False,
            "received_events": [],
            "processed_ids": set(),
            "request_count": 0,
            "lock": threading.Lock(),
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def set_response_code(self, code: int) -> Self:
        self._config["response_code"] = code
        return self

    def set_response_sequence(self, codes: list[int]) -> Self:
        """Answer the next requests with ``codes`` in order, then fall back to the fixed code."""
        with self._config["lock"]:
            self._config["response_sequence"] = list(codes)
        return self

    def set_response_delay(self, seconds: float) -> Self:
        self._config["response_delay"] = seconds
        return self

    def enable_signature_verification(self, secret: str) -> Self:
        self._config["signature_secret"] = secret
        return self

    def enable_idempotency(self) -> Self:
        self._config["idempotency_enabled"] = True
        return self

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _WebhookHandler)
        self._server.config = self._config  # type: ignore[attr-defined]
        # Get the actual port (useful when port=0)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}/webhook"

    @property
    def port(self) -> int:
        return self._port

    def get_received_events(self) -> list[dict]:
        with self._config["lock"]:
            return list(self._config["received_events"])

    def get_processed_count(self) -> int:
        with self._config["lock"]:
            return len(self._config["received_events"])

    def get_request_count(self) -> int:
        with self._config["lock"]:
            return self._config["request_count"]

    def was_delivery_processed(self, delivery_id: str) -> bool:
        with self._config["lock"]:
            return delivery_id in self._config["processed_ids"]

    def clear_events(self) -> None:
        with self._config["lock"]:
            self._config["received_events"].clear()
            self._config["processed_ids"].clear()
            self._config["request_count"] = 0
