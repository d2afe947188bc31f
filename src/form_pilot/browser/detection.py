"""Heuristic detection of CAPTCHA and human-verification challenges."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from ..config import DEFAULT_CHALLENGE_PHRASES, DEFAULT_CHALLENGE_SELECTORS, DetectionConfig
from ..models import CaptchaDetection

NOT_DETECTED_MESSAGE = "No CAPTCHA or verification detected"


@dataclass
class ChallengeDetector:
    """Match a page against a fixed list of structural signatures and phrases.

    Only exact signature and substring matches count, so false negatives are
    possible while false positives stay rare.
    """

    selectors: Sequence[str] = field(default_factory=lambda: list(DEFAULT_CHALLENGE_SELECTORS))
    phrases: Sequence[str] = field(default_factory=lambda: list(DEFAULT_CHALLENGE_PHRASES))
    captcha_message: str = DetectionConfig().captcha_message
    verification_message: str = DetectionConfig().verification_message

    @classmethod
    def from_config(cls, config: DetectionConfig) -> "ChallengeDetector":
        return cls(
            selectors=list(config.selectors),
            phrases=list(config.phrases),
            captcha_message=config.captcha_message,
            verification_message=config.verification_message,
        )

    def scan(
        self,
        first_visible: Callable[[Sequence[str]], Optional[str]],
        body_text: Callable[[], str],
    ) -> CaptchaDetection:
        """Run the signature checks using the page probes supplied by a backend."""

        if self.selectors and first_visible(self.selectors):
            return CaptchaDetection(detected=True, kind="captcha", message=self.captcha_message)
        if self.phrases:
            text = (body_text() or "").lower()
            for phrase in self.phrases:
                if phrase.lower() in text:
                    return CaptchaDetection(
                        detected=True,
                        kind="verification",
                        message=self.verification_message,
                    )
        return CaptchaDetection(detected=False, message=NOT_DETECTED_MESSAGE)
