"""Picks the OpenAI-compatible endpoint the conversation relay talks to.

Providers are tried in ``PROVIDER_ORDER``; ``SCOUT_MODEL_PROVIDER`` moves one
to the front. A provider counts as available once its credentials (or, for
keyless local servers, its base URL) are present in the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Set


@dataclass(frozen=True)
class ProviderSelection:
    name: str
    model: str
    api_key_env: Optional[str]
    base_url_env: Optional[str] = None
    default_base_url: Optional[str] = None
    requires_api_key: bool = True


@dataclass(frozen=True)
class _Provider:
    prefix: str
    default_model: str
    default_base_url: str
    requires_api_key: bool = True


PROVIDERS: Dict[str, _Provider] = {
    "openai": _Provider("OPENAI", "gpt-4o-mini", "https://api.openai.com/v1"),
    "xai": _Provider("XAI", "grok-2-latest", "https://api.x.ai/v1"),
    "local": _Provider("LOCAL", "llama3.1", "http://127.0.0.1:11434/v1", requires_api_key=False),
}

PROVIDER_ORDER = ("openai", "xai", "local")


class ModelRouter:
    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        allowed_providers: Optional[Iterable[str]] = None,
    ) -> None:
        self._env = env if env is not None else os.environ
        self._allowed: Optional[Set[str]] = set(allowed_providers) if allowed_providers else None
        self._preferred = (self._env.get("SCOUT_MODEL_PROVIDER") or "").strip().lower() or None

    def _available(self, name: str) -> bool:
        if self._allowed is not None and name not in self._allowed:
            return False
        spec = PROVIDERS[name]
        needed = f"{spec.prefix}_API_KEY" if spec.requires_api_key else f"{spec.prefix}_BASE_URL"
        return bool(self._env.get(needed))

    def resolve_provider(self, name: str) -> ProviderSelection:
        spec = PROVIDERS[name]
        model = self._env.get("SCOUT_MODEL") or self._env.get(f"{spec.prefix}_MODEL") or spec.default_model
        return ProviderSelection(
            name=name,
            model=model,
            api_key_env=f"{spec.prefix}_API_KEY",
            base_url_env=f"{spec.prefix}_BASE_URL",
            default_base_url=spec.default_base_url,
            requires_api_key=spec.requires_api_key,
        )

    def select_provider(self, purpose: str = "conversation") -> ProviderSelection:
        """First available provider, preferred one first.

        Raises ``RuntimeError`` when none is configured.
        """
        order = list(PROVIDER_ORDER)
        if self._preferred in PROVIDERS:
            order.remove(self._preferred)
            order.insert(0, self._preferred)
        for name in order:
            if self._available(name):
                return self.resolve_provider(name)
        raise RuntimeError(f"no model provider configured for {purpose}")

    def base_url_for(self, selection: ProviderSelection) -> Optional[str]:
        if selection.base_url_env and self._env.get(selection.base_url_env):
            return self._env[selection.base_url_env]
        return selection.default_base_url

    def api_key_for(self, selection: ProviderSelection) -> Optional[str]:
        if not selection.api_key_env:
            return None
        return self._env.get(selection.api_key_env)
