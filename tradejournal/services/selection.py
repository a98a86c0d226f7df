"""The selected challenge, remembered across runs in a small JSON file."""

import json
import logging
from pathlib import Path

from tradejournal.config import settings

logger = logging.getLogger(__name__)


class ChallengeSelection:
    """Which challenge trades are logged against, per user.

    The file holds ``{"userId": ..., "challengeId": ...}``. A selection saved
    by another user is ignored.
    """

    def __init__(self, user_id: str, path: Path | None = None) -> None:
        self.user_id = user_id
        self.path = Path(path or settings.selection_file)
        self.challenge_id: str | None = None

    def load(self) -> str | None:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Could not read selection file %s: %s", self.path, e)
            return None
        if isinstance(raw, dict) and raw.get("userId") == self.user_id:
            self.challenge_id = raw.get("challengeId") or None
        return self.challenge_id

    def select(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        self._save()

    def clear(self) -> None:
        self.challenge_id = None
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove selection file %s: %s", self.path, e)

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps({"userId": self.user_id, "challengeId": self.challenge_id}),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("Could not save selection file %s: %s", self.path, e)
