"""Cart session persistence."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .models import SessionData

logger = logging.getLogger(__name__)


class SessionStore:
    """Persists the current cart session id across restarts."""

    def __init__(self, session_file: Optional[str] = None) -> None:
        """
        Initialize the session store.

        Args:
            session_file: Path to store session data. Defaults to ~/.florist_session.json
        """
        if session_file is None:
            session_file = str(Path.home() / ".florist_session.json")
        self.session_file = session_file

    def load(self) -> Optional[str]:
        """Load the saved cart id, if any."""
        if not os.path.exists(self.session_file):
            return None
        try:
            with open(self.session_file) as f:
                session = SessionData(**json.load(f))
        except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
            # A corrupted file means there is no usable session
            logger.warning(f"Could not load session from {self.session_file}: {e}")
            return None
        if session.cart_id:
            logger.info(f"Loaded cart session from {self.session_file}")
        return session.cart_id

    def save(self, cart_id: Optional[str]) -> None:
        """Save the cart id; ``None`` removes the stored session."""
        if not cart_id:
            self.clear()
            return

        with open(self.session_file, "w") as f:
            json.dump(SessionData(cart_id=cart_id).model_dump(), f, indent=2)
        os.chmod(self.session_file, 0o600)
        logger.info(f"Cart session saved to {self.session_file}")

    def clear(self) -> None:
        if os.path.exists(self.session_file):
            os.remove(self.session_file)
            logger.info("Cart session cleared")
