"""Stake persistence backed by the hosted Supabase database."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar, Union

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from .config import GeoStakeConfig
from .errors import PersistenceError
from .stake import DEFAULT_NETWORK, Stake, StakerReward
from .timing import utcnow

Params = Union[Dict[str, Any], Sequence[Tuple[str, Any]]]
Model = TypeVar("Model", bound=BaseModel)


def _parse_row(model: Type[Model], row: Dict[str, Any]) -> Model:
    try:
        return model(**row)
    except ValidationError as e:
        raise PersistenceError(f"Invalid {model.__name__} row returned: {e}") from e


def _parse_rows(model: Type[Model], rows: List[Dict[str, Any]]) -> List[Model]:
    """Build models from rows, skipping rows that fail validation."""
    parsed = []
    for row in rows:
        try:
            parsed.append(model(**row))
        except ValidationError as e:
            logger.warning(f"Skipping invalid {model.__name__} row {row.get('id')}: {e}")
    return parsed


class StakeStore:
    """CRUD over the stakes and staker_rewards tables via PostgREST.

    Every method raises PersistenceError on network or database failure;
    callers decide whether to fall back to data they already hold.
    """

    def __init__(self, config: GeoStakeConfig, client: Optional[httpx.AsyncClient] = None):
        if not config.supabase_url or not config.supabase_key:
            raise PersistenceError(
                "Database not configured. Set GEOSTAKE_SUPABASE_URL and GEOSTAKE_SUPABASE_KEY."
            )
        self.config = config
        self.network = config.network or DEFAULT_NETWORK
        headers = {
            "apikey": config.supabase_key,
            "Authorization": f"Bearer {config.supabase_key}",
            "Content-Type": "application/json",
        }
        base_url = f"{config.supabase_url.rstrip('/')}/rest/v1"
        if client is None:
            client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=15.0)
        else:
            client.base_url = base_url
            client.headers.update(headers)
        self._client = client

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StakeStore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _request(self, method: str, path: str, *, params: Optional[Params] = None,
                       json: Any = None, headers: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=json,
                                                  headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceError(
                f"{method} {path} failed with {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {path} failed: {e}") from e

        logger.debug(f"{method} {path} -> {response.status_code}")
        if not response.content:
            return None
        return response.json()

    async def _select_stakes(self, params: Params) -> List[Stake]:
        rows = await self._request("GET", "/stakes", params=params) or []
        return _parse_rows(Stake, rows)

    # Stakes

    async def insert_stake(self, stake: Stake) -> Stake:
        rows = await self._request(
            "POST", "/stakes", json=stake.to_row(),
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise PersistenceError(f"Insert of stake #{stake.stake_id} returned no row")
        logger.info(f"Saved stake #{stake.stake_id} to database")
        return _parse_row(Stake, rows[0])

    async def get_stake(self, stake_id: int) -> Optional[Stake]:
        stakes = await self._select_stakes({"stake_id": f"eq.{stake_id}", "limit": 1})
        return stakes[0] if stakes else None

    async def get_stake_by_tx_hash(self, tx_hash: str) -> Optional[Stake]:
        stakes = await self._select_stakes({"transaction_hash": f"eq.{tx_hash}", "limit": 1})
        return stakes[0] if stakes else None

    async def get_stakes_by_staker(self, staker_address: str) -> List[Stake]:
        return await self._select_stakes({
            "staker_address": f"ilike.{staker_address}",
            "order": "created_at.desc",
        })

    async def get_active_stakes(self) -> List[Stake]:
        """Stakes that are neither claimed nor refunded (they may still be expired)."""
        return await self._select_stakes({
            "claimed": "eq.false",
            "refunded": "eq.false",
            "order": "created_at.desc",
        })

    async def get_all_stakes(self) -> List[Stake]:
        return await self._select_stakes({"order": "created_at.desc"})

    async def get_stakes_claimed_by(self, claimer_address: str) -> List[Stake]:
        return await self._select_stakes({
            "claimed_by": f"ilike.{claimer_address}",
            "claimed": "eq.true",
            "order": "claimed_at.desc",
        })

    async def get_stakes_in_area(self, min_lat: float, max_lat: float,
                                 min_lon: float, max_lon: float) -> List[Stake]:
        """Unsettled stakes inside a bounding box."""
        return await self._select_stakes([
            ("latitude", f"gte.{min_lat}"),
            ("latitude", f"lte.{max_lat}"),
            ("longitude", f"gte.{min_lon}"),
            ("longitude", f"lte.{max_lon}"),
            ("claimed", "eq.false"),
            ("refunded", "eq.false"),
            ("order", "created_at.desc"),
        ])

    async def _settle(self, stake_id: int, fields: Dict[str, Any]) -> Optional[Stake]:
        # Settled rows are never updated again
        rows = await self._request(
            "PATCH", "/stakes",
            params={"stake_id": f"eq.{stake_id}", "claimed": "eq.false", "refunded": "eq.false"},
            json=fields,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            logger.warning(f"No unsettled row updated for stake #{stake_id}")
            return None
        return _parse_row(Stake, rows[0])

    async def mark_as_claimed(self, stake_id: int, claimer_address: str,
                              claimer_amount: Optional[int] = None,
                              staker_reward: Optional[int] = None,
                              claimed_at: Optional[datetime] = None) -> Optional[Stake]:
        fields: Dict[str, Any] = {
            "claimed": True,
            "claimed_by": claimer_address.lower(),
            "claimed_at": (claimed_at or utcnow()).isoformat(),
        }
        if claimer_amount is not None:
            fields["claimer_amount"] = str(claimer_amount)
        if staker_reward is not None:
            fields["staker_reward"] = str(staker_reward)
        return await self._settle(stake_id, fields)

    async def mark_as_refunded(self, stake_id: int,
                               refunded_at: Optional[datetime] = None) -> Optional[Stake]:
        return await self._settle(stake_id, {
            "refunded": True,
            "refunded_at": (refunded_at or utcnow()).isoformat(),
        })

    # Staker rewards

    async def get_staker_rewards(self, staker_address: str) -> List[StakerReward]:
        rows = await self._request("GET", "/staker_rewards", params={
            "staker_address": f"ilike.{staker_address}",
            "network": f"eq.{self.network}",
            "order": "updated_at.desc",
        }) or []
        return _parse_rows(StakerReward, rows)

    async def update_staker_reward(self, staker_address: str, token_address: str,
                                   token_symbol: str, reward_amount: int) -> None:
        """Credit a staker with the reward from a claim of one of their stakes."""
        await self._request("POST", "/rpc/update_staker_reward", json={
            "p_staker_address": staker_address.lower(),
            "p_token_address": token_address.lower(),
            "p_token_symbol": token_symbol,
            "p_reward_amount": str(reward_amount),
            "p_network": self.network,
            "p_contract_address": (self.config.contract_address or "").lower(),
        })

    async def record_reward_withdrawal(self, staker_address: str, token_address: str,
                                       withdrawal_amount: int) -> None:
        await self._request("POST", "/rpc/record_reward_withdrawal", json={
            "p_staker_address": staker_address.lower(),
            "p_token_address": token_address.lower(),
            "p_withdrawal_amount": str(withdrawal_amount),
            "p_network": self.network,
            "p_contract_address": (self.config.contract_address or "").lower(),
        })
