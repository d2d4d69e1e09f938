import logging
import threading
from datetime import datetime, timedelta
from http.server import SimpleHTTPRequestHandler, HTTPServer

from posmoni import variables

logger = logging.getLogger(__name__)

PULSE_PATH = '/pulse/'


def pulse():
    """Mark that the monitor loops are alive"""
    PulseRequestHandler.update_last_pulse()


class PulseRequestHandler(SimpleHTTPRequestHandler):
    """Request handler for Docker HEALTHCHECK"""

    # Encapsulate last pulse as a class variable
    _last_pulse = datetime.now()
    _lock = threading.Lock()

    @classmethod
    def update_last_pulse(cls):
        """Update the last pulse time to the current time."""
        with cls._lock:
            cls._last_pulse = datetime.now()

    @classmethod
    def get_last_pulse(cls) -> datetime:
        """Get the current last pulse time."""
        with cls._lock:
            return cls._last_pulse

    def do_GET(self):
        """`/pulse/` refreshes the last pulse, any path reports whether it is fresh enough."""
        if self.path == PULSE_PATH:
            self.update_last_pulse()

        if datetime.now() - self.get_last_pulse() > timedelta(seconds=variables.MAX_CYCLE_LIFETIME_IN_SECONDS):
            self.send_response(503)
            self.end_headers()
            self.wfile.write(b'{"metrics": "fail", "reason": "timeout exceeded"}\n')
        else:
            self.send_response(200)
            self.end_headers()
            self.wfile.write(b'{"metrics": "ok", "reason": "ok"}\n')

    def log_request(self, *args, **kwargs):
        # Disable non-error logs
        pass


def start_pulse_server():  # pragma: no cover
    """
    Docker healthcheck fails when neither a finalized checkpoint nor a sync tick
    were processed for MAX_CYCLE_LIFETIME_IN_SECONDS.
    Finalization may stall on the network, so keep the lifetime generous for `monitor`.
    """
    server = HTTPServer(('localhost', variables.HEALTHCHECK_SERVER_PORT), RequestHandlerClass=PulseRequestHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True, name='pulse-server')
    thread.start()
