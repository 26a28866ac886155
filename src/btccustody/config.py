from __future__ import annotations

import json
from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from btccustody.domain.task import DEFAULT_AMOUNT_GRANULARITY, DEFAULT_MIN_AMOUNT, AmountPolicy

_NETWORKS = {"mainnet", "testnet"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    state_db_path: str = Field(default="btccustody_state.db", alias="STATE_DB_PATH")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    bitcoin_network: str = Field(default="mainnet", alias="BITCOIN_NETWORK")
    min_deposit_amount: int = Field(default=DEFAULT_MIN_AMOUNT, alias="MIN_DEPOSIT_AMOUNT")
    amount_granularity: int = Field(
        default=DEFAULT_AMOUNT_GRANULARITY, alias="AMOUNT_GRANULARITY"
    )

    admin_actors: Annotated[list[str], NoDecode] = Field(
        default_factory=list, alias="ADMIN_ACTORS"
    )
    relayer_actors: Annotated[list[str], NoDecode] = Field(
        default_factory=list, alias="RELAYER_ACTORS"
    )

    bridge_base_url: str = Field(default="http://127.0.0.1:8080", alias="BRIDGE_BASE_URL")
    bridge_api_token: SecretStr | None = Field(default=None, alias="BRIDGE_API_TOKEN")
    esplora_base_url: str = Field(
        default="https://blockstream.info/api", alias="ESPLORA_BASE_URL"
    )
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")
    http_retry_attempts: int = Field(default=4, alias="HTTP_RETRY_ATTEMPTS")

    @field_validator("admin_actors", "relayer_actors", mode="before")
    def parse_actor_list(cls, value: str | list[str] | None) -> list[str]:
        items: list[object]
        if value is None:
            return []
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith(("[", "{")):
                parsed = json.loads(raw)
                if not isinstance(parsed, list):
                    raise ValueError("actor JSON value must be a list")
                items = parsed
            else:
                items = raw.split(",")
        else:
            items = list(value)

        normalized: list[str] = []
        for item in items:
            candidate = str(item).strip()
            if candidate and candidate not in normalized:
                normalized.append(candidate)
        return normalized

    @field_validator("bitcoin_network")
    def validate_network(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in _NETWORKS:
            raise ValueError("BITCOIN_NETWORK must be 'mainnet' or 'testnet'")
        return normalized

    @field_validator("min_deposit_amount")
    def validate_min_amount(cls, value: int) -> int:
        if value < 0:
            raise ValueError("MIN_DEPOSIT_AMOUNT must be >= 0")
        return value

    @field_validator("amount_granularity")
    def validate_granularity(cls, value: int) -> int:
        if value < 1:
            raise ValueError("AMOUNT_GRANULARITY must be >= 1")
        return value

    @field_validator("http_timeout_seconds")
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("HTTP_TIMEOUT_SECONDS must be > 0")
        return value

    @field_validator("http_retry_attempts")
    def validate_retry_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("HTTP_RETRY_ATTEMPTS must be >= 1")
        return value

    @property
    def mainnet(self) -> bool:
        return self.bitcoin_network == "mainnet"

    def amount_policy(self) -> AmountPolicy:
        return AmountPolicy(
            min_amount=self.min_deposit_amount,
            granularity=self.amount_granularity,
        )
