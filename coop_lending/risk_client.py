"""
Risk Narrative Client Module

REST client for the remote risk commentary service. The service receives
the applicant's name, requested amount and salary and answers with a risk
score (0-100) and a list of concerns. Its output is advisory text shown to
approvers; nothing in the lending core acts on it.
"""

import httpx
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .logging_config import get_logger

logger = get_logger("coop_lending.risk")


@dataclass
class RiskNarrative:
    """Advisory risk commentary for one application"""
    risk_score: Optional[int]        # 0-100, None when unavailable
    concerns: List[str] = field(default_factory=list)
    available: bool = True
    latency_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "concerns": list(self.concerns),
            "available": self.available,
            "latency_ms": self.latency_ms,
        }


class RiskNarrativeClient:
    """REST client for the risk narrative service"""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self.enabled = bool(self.base_url)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def build_request(self, applicant_name: str, amount: Decimal, salary: Decimal) -> Dict[str, Any]:
        if salary is None or Decimal(str(salary)) <= 0:
            raise ValidationError("Salary must be entered before requesting a risk assessment")
        return {
            "applicant_name": applicant_name,
            "amount": str(amount),
            "salary": str(salary),
        }

    def assess(self, applicant_name: str, amount: Decimal, salary: Decimal) -> RiskNarrative:
        """
        Request commentary for an application.

        Raises:
            ValidationError: If no salary has been entered yet

        Returns:
            RiskNarrative; an unavailable narrative when the service is
            disabled, unreachable or answers with something unusable
        """
        request = self.build_request(applicant_name, amount, salary)
        if not self.enabled:
            return self._fallback(0.0, "risk_narrative_disabled")

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        start = time.time()
        try:
            response = self._client.post(f"{self.base_url}/assess", json=request, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Risk narrative service unreachable: {e}")
            return self._fallback((time.time() - start) * 1000, "service_unreachable")

        latency_ms = (time.time() - start) * 1000
        if response.status_code != 200:
            logger.warning(f"Risk narrative service returned {response.status_code}: {response.text}")
            return self._fallback(latency_ms, f"http_{response.status_code}")

        try:
            data = response.json()
            score = int(data.get("risk_score", data.get("riskScore")))
            concerns = [str(c) for c in data.get("concerns", [])]
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Risk narrative service returned an unusable body: {e}")
            return self._fallback(latency_ms, "malformed_response")

        return RiskNarrative(
            risk_score=max(0, min(100, score)),
            concerns=concerns,
            latency_ms=latency_ms,
        )

    def _fallback(self, latency_ms: float, reason: str) -> RiskNarrative:
        return RiskNarrative(
            risk_score=None,
            concerns=[reason],
            available=False,
            latency_ms=latency_ms,
        )

    def health_check(self) -> bool:
        if not self.enabled:
            return False
        try:
            return self._client.get(f"{self.base_url}/health").status_code == 200
        except httpx.HTTPError:
            return False

    def close(self):
        self._client.close()


class MockRiskNarrativeClient(RiskNarrativeClient):
    """Offline client for tests and development: scores on amount-to-salary ratio"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.enabled = True

    def assess(self, applicant_name: str, amount: Decimal, salary: Decimal) -> RiskNarrative:
        self.build_request(applicant_name, amount, salary)
        ratio = Decimal(str(amount)) / Decimal(str(salary))

        if ratio > 10:
            return RiskNarrative(85, ["amount exceeds ten months of salary"], latency_ms=1.0)
        elif ratio > 5:
            return RiskNarrative(60, ["amount exceeds five months of salary"], latency_ms=1.0)
        elif ratio > 2:
            return RiskNarrative(35, ["amount exceeds two months of salary"], latency_ms=1.0)
        return RiskNarrative(10, [], latency_ms=1.0)

    def health_check(self) -> bool:
        return True
