"""
Sanctions screening providers: local denylist screening and a remote HTTP client.
"""
import json
import re
import unicodedata
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import httpx
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
from rapidfuzz import fuzz

from compliance.core.config import settings
from compliance.core.exceptions import ProviderError, ValidationError
from compliance.schemas.compliance import SanctionsCheckResult, SanctionsScreeningRequest
from compliance.services.interfaces import SanctionsScreeningProvider
from compliance.utils.logging import get_logger

logger = get_logger(__name__)


class ProviderType(str, Enum):
    """Sanctions provider types."""
    DENYLIST = "denylist"
    HTTP = "http"


class MatchType(str, Enum):
    """Match codes reported by the local provider."""
    ADDRESS = "ADDRESS_MATCH"
    NAME = "NAME_MATCH"


class SanctionedParty(BaseModel):
    """Named entry on a local sanctions list."""

    name: str = Field(..., min_length=1, description="Listed name")
    lists: List[str] = Field(default_factory=lambda: ["LOCAL"], description="Lists the party appears on")
    aliases: List[str] = Field(default_factory=list, description="Alternative names")
    jurisdiction: Optional[str] = Field(None, description="Jurisdiction the listing applies to, None for all")


def normalize_name(name: Optional[str]) -> str:
    """Strip accents, lowercase and collapse whitespace."""
    if not name:
        return ""

    normalized = unicodedata.normalize("NFD", name)
    normalized = "".join(c for c in normalized if unicodedata.category(c) != "Mn")
    normalized = re.sub(r"[^\w\s]", " ", normalized.lower())
    return re.sub(r"\s+", " ", normalized).strip()


def load_sanctioned_parties(path: str) -> List[SanctionedParty]:
    """
    Load named sanctioned parties from a JSON file.

    The file holds a list of objects with ``name`` and optional ``lists``,
    ``aliases`` and ``jurisdiction``.

    Args:
        path: Path to the JSON file

    Returns:
        Parsed parties

    Raises:
        ValidationError: If the file cannot be read or is not a valid party list
    """
    try:
        with open(path, encoding="utf-8") as f:
            entries = json.load(f)
    except (OSError, ValueError) as e:
        raise ValidationError(
            f"Cannot read sanctioned parties file: {type(e).__name__}",
            field="SANCTIONS_PARTIES_FILE",
            path=path,
        )

    if not isinstance(entries, list):
        raise ValidationError(
            "Sanctioned parties file must contain a list",
            field="SANCTIONS_PARTIES_FILE",
            path=path,
        )

    try:
        return [SanctionedParty.model_validate(entry) for entry in entries]
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid sanctioned party entry: {e.error_count()} error(s)",
            field="SANCTIONS_PARTIES_FILE",
            path=path,
        )


class DenylistSanctionsProvider(SanctionsScreeningProvider):
    """Screens against a local address denylist and fuzzy-matched named parties."""

    def __init__(
        self,
        denylist: Iterable[str] = (),
        parties: Iterable[SanctionedParty] = (),
        name_match_threshold: float = 90.0,
        denylist_name: str = "LOCAL_DENYLIST",
    ):
        """
        Initialize provider.

        Args:
            denylist: Addresses that always match
            parties: Named parties for fuzzy name screening
            name_match_threshold: Minimum token sort ratio (0-100) counted as a match
            denylist_name: List name reported for address matches
        """
        self.denylist = {address.strip() for address in denylist if address and address.strip()}
        self.parties = list(parties)
        self.name_match_threshold = name_match_threshold
        self.denylist_name = denylist_name

    def get_provider_name(self) -> str:
        return ProviderType.DENYLIST.value

    async def screen(self, request: SanctionsScreeningRequest) -> SanctionsCheckResult:
        if request.address in self.denylist:
            return SanctionsCheckResult(
                is_match=True,
                match_type=MatchType.ADDRESS.value,
                matched_lists=[self.denylist_name],
                match_score=100.0,
            )

        query = normalize_name(request.name)
        if not query:
            return SanctionsCheckResult.clear()

        best_score = 0.0
        matched_lists: List[str] = []
        for party in self._candidates(request.jurisdiction):
            score = max(
                fuzz.token_sort_ratio(query, normalize_name(candidate))
                for candidate in [party.name, *party.aliases]
            )
            if score >= self.name_match_threshold:
                matched_lists.extend(name for name in party.lists if name not in matched_lists)
            best_score = max(best_score, score)

        if matched_lists:
            return SanctionsCheckResult(
                is_match=True,
                match_type=MatchType.NAME.value,
                matched_lists=matched_lists,
                match_score=round(best_score, 2),
            )

        return SanctionsCheckResult(is_match=False, match_score=round(best_score, 2))

    def _candidates(self, jurisdiction: str) -> List[SanctionedParty]:
        """Parties whose listing applies to the jurisdiction; all when it is blank."""
        if not jurisdiction:
            return self.parties
        code = jurisdiction.upper()
        return [
            party for party in self.parties
            if not party.jurisdiction or party.jurisdiction.upper() == code
        ]


class HttpSanctionsProvider(SanctionsScreeningProvider):
    """Posts screening requests to a remote compliance endpoint.

    Accepts either a full screening result body or an allow/deny verdict of
    the form ``{"allowed": bool, "reason": str}``.
    """

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize provider.

        Args:
            url: Screening endpoint
            token: Optional bearer token
            timeout: Request timeout in seconds
            client: Shared client; a short-lived one is created per request when omitted
        """
        if not url:
            raise ValueError("Sanctions API URL is required for the HTTP provider")
        self.url = url
        self.token = token
        self.timeout = timeout
        self._client = client

    def get_provider_name(self) -> str:
        return ProviderType.HTTP.value

    def _build_headers(self) -> Dict[str, str]:
        headers = {"content-type": "application/json"}
        if self.token:
            headers["authorization"] = f"Bearer {self.token}"
        return headers

    async def screen(self, request: SanctionsScreeningRequest) -> SanctionsCheckResult:
        try:
            if self._client is not None:
                response = await self._post(self._client, request)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, request)
        except httpx.HTTPError as e:
            raise ProviderError(self.get_provider_name(), f"Screening request failed: {type(e).__name__}")

        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderError(
                self.get_provider_name(),
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            raise ProviderError(self.get_provider_name(), "bad response")

        return self._parse_body(body)

    async def _post(self, client: httpx.AsyncClient, request: SanctionsScreeningRequest) -> httpx.Response:
        return await client.post(self.url, json=request.model_dump(), headers=self._build_headers())

    def _parse_body(self, body) -> SanctionsCheckResult:
        if not isinstance(body, dict):
            raise ProviderError(self.get_provider_name(), "bad response")

        if "allowed" in body:
            if not isinstance(body["allowed"], bool):
                raise ProviderError(self.get_provider_name(), "bad response")
            if body["allowed"]:
                return SanctionsCheckResult.clear()
            return SanctionsCheckResult(is_match=True, match_type=body.get("reason") or "DENIED")

        try:
            return SanctionsCheckResult.model_validate(body)
        except PydanticValidationError:
            raise ProviderError(self.get_provider_name(), "bad response")


class SanctionsProviderFactory:
    """Factory for creating sanctions providers."""

    _providers = {
        ProviderType.DENYLIST: DenylistSanctionsProvider,
        ProviderType.HTTP: HttpSanctionsProvider,
    }

    @classmethod
    def create_provider(
        cls,
        provider_type: Union[ProviderType, str],
        **kwargs
    ) -> SanctionsScreeningProvider:
        """
        Create a sanctions provider instance.

        Args:
            provider_type: Type of provider to create
            **kwargs: Provider constructor options

        Returns:
            Provider instance

        Raises:
            ValueError: If provider type is not supported
        """
        if isinstance(provider_type, str):
            try:
                provider_type = ProviderType(provider_type)
            except ValueError:
                raise ValueError(f"Unsupported provider type: {provider_type}")

        return cls._providers[provider_type](**kwargs)

    @classmethod
    def from_settings(cls) -> SanctionsScreeningProvider:
        """Create the provider configured in settings."""
        if settings.SANCTIONS_PROVIDER == ProviderType.HTTP.value:
            return cls.create_provider(
                ProviderType.HTTP,
                url=settings.SANCTIONS_API_URL,
                token=settings.SANCTIONS_API_TOKEN,
                timeout=settings.SANCTIONS_API_TIMEOUT,
            )

        parties = []
        if settings.SANCTIONS_PARTIES_FILE:
            parties = load_sanctioned_parties(settings.SANCTIONS_PARTIES_FILE)

        logger.info(
            "Using local denylist sanctions provider",
            denylisted_addresses=len(settings.sanctions_denylist),
            sanctioned_parties=len(parties),
        )
        return cls.create_provider(
            ProviderType.DENYLIST,
            denylist=settings.sanctions_denylist,
            parties=parties,
            name_match_threshold=settings.SANCTIONS_NAME_MATCH_THRESHOLD,
        )
