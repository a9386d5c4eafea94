"""Cross-check of the computed season against the voting contract's cycle counter.

The date-derived season number stays authoritative. The contract value is
only reported and a mismatch is logged for operators.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from evermark.domain.leaderboard.season import SeasonOracle
from evermark.obs import metrics as obs_metrics

_LOG = logging.getLogger(__name__)

VOTING_ABI = [
	{
		"inputs": [],
		"name": "getCurrentCycle",
		"outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
		"stateMutability": "view",
		"type": "function",
	}
]


class CycleProbe(Protocol):
	async def current_cycle(self) -> int:
		...


class ContractSeasonProbe(CycleProbe):
	"""Reads `getCurrentCycle()` from the voting contract over JSON-RPC."""

	def __init__(self, rpc_url: str, contract_address: str, *, timeout_seconds: float = 5.0) -> None:
		self._w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))
		self._contract = self._w3.eth.contract(
			address=AsyncWeb3.to_checksum_address(contract_address),
			abi=VOTING_ABI,
		)

	@classmethod
	def from_settings(cls, settings) -> Optional["ContractSeasonProbe"]:
		if not settings.voting_rpc_url or not settings.voting_contract_address:
			return None
		return cls(
			settings.voting_rpc_url,
			settings.voting_contract_address,
			timeout_seconds=settings.voting_rpc_timeout_seconds,
		)

	async def current_cycle(self) -> int:
		return int(await self._contract.functions.getCurrentCycle().call())


@dataclass(slots=True)
class AuditReport:
	computed: int
	contract: Optional[int]
	checked_at: datetime

	@property
	def in_sync(self) -> Optional[bool]:
		if self.contract is None:
			return None
		return self.contract == self.computed


class SeasonAudit:
	def __init__(self, oracle: SeasonOracle, probe: Optional[CycleProbe]) -> None:
		self.oracle = oracle
		self.probe = probe

	async def compare(self, now: Optional[datetime] = None) -> AuditReport:
		moment = now or datetime.now(timezone.utc)
		computed = self.oracle.season_for_date(moment).number
		contract: Optional[int] = None
		if self.probe is not None:
			try:
				contract = await self.probe.current_cycle()
			except Exception:  # noqa: BLE001 - RPC failures only degrade the report
				_LOG.warning("season_audit.probe_failed", exc_info=True)
		report = AuditReport(computed=computed, contract=contract, checked_at=moment)
		if report.in_sync is False:
			obs_metrics.inc_season_audit_mismatch()
			_LOG.warning(
				"season_audit.mismatch",
				extra={"computed": computed, "contract": contract},
			)
		return report


__all__ = ["AuditReport", "ContractSeasonProbe", "CycleProbe", "SeasonAudit", "VOTING_ABI"]
