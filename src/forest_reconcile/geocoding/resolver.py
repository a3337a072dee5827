"""
Cascading geocode resolver.

One resolver handles every lookup: cache (alias key, then query key), then
the configured providers in priority order under the run's lookup budget,
then, for forests, an area-centroid fallback when providers found nothing.
Cache hits from the fast provider are queued for a background upgrade by a
precise provider.

Attempt trail for one geocode_forest call:

    START -> per query: CACHE_CHECK -> PROVIDER_CASCADE -> SUCCESS | NEXT_QUERY
          -> AREA_FALLBACK_CHECK -> DONE (resolved | unresolved)
"""

import logging
import re
import time
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from forest_reconcile.cache.geocode_cache import GeocodeCache, alias_key, query_key
from forest_reconcile.cache.models import GeocodeCacheEntry
from forest_reconcile.geocoding.diagnostics import (
    PROVIDER_LABELS,
    select_failure_reason,
    should_use_area_fallback,
)
from forest_reconcile.geocoding.enrichment_queue import EnrichmentJob, EnrichmentQueue
from forest_reconcile.geocoding.models import (
    GeocodeAttempt,
    GeocodeHit,
    GeocodeOutcome,
    GeocodeProviderName,
    GeocodeResponse,
)
from forest_reconcile.geocoding.providers.base import GeocodeProvider
from forest_reconcile.geocoding.run_context import LookupBudget, RunContext
from forest_reconcile.utils.text_normalize import normalize_cache_key, normalize_label

logger = logging.getLogger(__name__)

DEFAULT_REGION_SUFFIX = "New South Wales, Australia"
AREA_FALLBACK_SUFFIX = "(area centroid approximation)"

# Generic words that identify nothing when checking a provider's display name
GEOCODE_STOP_WORDS = frozenset({
    "state", "forest", "forests", "national", "park", "reserve", "new", "south",
    "wales", "australia", "nsw", "near", "around", "the", "of", "and", "pine",
    "native", "region", "road", "council", "shire", "city", "area",
})

# Display-name fragments that are never a forest (e.g. agency offices)
BLACKLISTED_DISPLAY_NAMES = ("forestry corporation",)

WordSets = Tuple[FrozenSet[str], ...]

_STATE_FOREST = re.compile(r"\bstate\s+forest\b", re.IGNORECASE)
_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")


def strip_state_forest(name: str) -> str:
    return normalize_label(_STATE_FOREST.sub(" ", name))


def with_state_forest(name: str) -> str:
    return name if _STATE_FOREST.search(name) else f"{name} State Forest"


def significant_words(name: str) -> FrozenSet[str]:
    """Identifying words of a name: 3+ letters, not generic, outside parentheses."""
    cleaned = _PARENTHETICAL.sub("", name).lower()
    words = (word.strip(".,;:'\"") for word in cleaned.split())
    return frozenset(word for word in words if len(word) >= 3 and word not in GEOCODE_STOP_WORDS)


def is_blacklisted(display_name: Optional[str]) -> bool:
    lower = (display_name or "").lower()
    return any(fragment in lower for fragment in BLACKLISTED_DISPLAY_NAMES)


def is_plausible(display_name: Optional[str], word_sets: WordSets) -> bool:
    """True if the display name contains every word of at least one set.

    No sets, or an empty set, means there is nothing to check.
    """
    if not word_sets:
        return True
    lower = (display_name or "").lower()
    return any(all(word in lower for word in words) for words in word_sets)


def rejection_reason(display_name: Optional[str], word_sets: WordSets) -> Optional[str]:
    if is_blacklisted(display_name):
        return f"Rejected blacklisted result \"{display_name}\""
    if not is_plausible(display_name, word_sets):
        return f"Rejected implausible result \"{display_name}\""
    return None


def _dedupe(queries: Iterable[Optional[str]]) -> List[str]:
    unique: List[str] = []
    seen = set()
    for query in queries:
        if not query:
            continue
        key = normalize_cache_key(query)
        if key not in seen:
            seen.add(key)
            unique.append(query)
    return unique


class CascadingGeocodeResolver:
    """Cache-first geocoding over an ordered list of providers."""

    def __init__(
        self,
        cache: GeocodeCache,
        providers: Sequence[GeocodeProvider],
        max_new_lookups_per_run: int = 25,
        region_suffix: str = DEFAULT_REGION_SUFFIX,
        background_enrichment: bool = True,
    ):
        """Initialize resolver.

        Args:
            cache: Geocode cache
            providers: Providers in priority order (fast/free first)
            max_new_lookups_per_run: Default budget for new_run_context()
            region_suffix: Appended to every query
            background_enrichment: Queue precise upgrades of fast-provider cache hits
        """
        self.cache = cache
        self.providers = list(providers)
        self.max_new_lookups_per_run = max_new_lookups_per_run
        self.region_suffix = region_suffix
        self.background_enrichment = background_enrichment

    # ------------------------------------------------------------------
    # Run context and enrichment
    # ------------------------------------------------------------------

    def new_run_context(
        self,
        max_new_lookups: Optional[int] = None,
        enrichment: bool = True,
    ) -> RunContext:
        """Fresh budget and enrichment queue for one run.

        Args:
            max_new_lookups: Budget override
            enrichment: Attach a background enrichment queue (when enabled and
                a precise provider is configured)
        """
        budget = LookupBudget(
            self.max_new_lookups_per_run if max_new_lookups is None else max_new_lookups
        )
        context = RunContext(budget=budget)
        if enrichment and self.background_enrichment and self._upgrade_providers():
            context.enrichment = EnrichmentQueue(lambda job: self._run_enrichment(job, context))
        return context

    def _upgrade_providers(self) -> List[GeocodeProvider]:
        return [p for p in self.providers if p.precise and p.is_configured()]

    def _is_precise(self, provider_name: Optional[str]) -> bool:
        for provider in self.providers:
            if provider.name.value == provider_name:
                return provider.precise
        return False

    def _maybe_enqueue_upgrade(
        self,
        entry: GeocodeCacheEntry,
        query: str,
        q_key: str,
        a_key: Optional[str],
        word_sets: WordSets,
        context: RunContext,
    ) -> None:
        if context.enrichment is None or self._is_precise(entry.provider):
            return
        if context.budget.exhausted:
            return
        context.enrichment.enqueue(EnrichmentJob(
            query=query,
            cache_key=q_key,
            alias_key=a_key,
            source_provider=entry.provider,
            required_words=word_sets,
        ))

    def _run_enrichment(self, job: EnrichmentJob, context: RunContext) -> bool:
        """Try precise providers for a queued query; overwrite the cache on success."""
        for provider in self._upgrade_providers():
            if not context.budget.try_consume():
                logger.debug(f"Enrichment skipped for {job.cache_key}: lookup budget exhausted")
                return False
            result = provider.attempt(job.query, job.alias_key, job.cache_key)
            if result.hit is None:
                continue
            if rejection_reason(result.hit.display_name, job.required_words):
                continue
            self.cache.store_hit(result.hit.to_cache_entry(job.cache_key), job.cache_key, job.alias_key)
            logger.info(
                f"Upgraded {job.cache_key} from {job.source_provider} to {provider.name.value}"
            )
            return True
        return False

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def geocode_query(
        self,
        query: str,
        alias: Optional[str],
        context: RunContext,
        required_words: WordSets = (),
    ) -> GeocodeResponse:
        """Resolve one query through the cache and the provider cascade.

        Args:
            query: Free-text query
            alias: Stable identity stored alongside the query (e.g. forest:<area>:<name>)
            context: Run context holding the budget and enrichment queue
            required_words: Word sets a display name must satisfy (see is_plausible)

        Returns:
            GeocodeResponse; coordinates are None if nothing resolved
        """
        q_key = query_key(query)
        a_key = alias_key(alias) if alias else None
        attempts: List[GeocodeAttempt] = []
        warnings: List[str] = []

        entry, found_key = self.cache.lookup(
            q_key, a_key,
            accept=lambda cached: rejection_reason(cached.display_name, required_words) is None,
        )
        if entry is not None:
            attempts.append(GeocodeAttempt(
                provider=GeocodeProviderName.CACHE,
                query=query,
                alias_key=a_key,
                cache_key=found_key,
                outcome=GeocodeOutcome.CACHE_HIT,
            ))
            self._maybe_enqueue_upgrade(entry, query, q_key, a_key, required_words, context)
            return self._response(GeocodeHit.from_cache_entry(entry), attempts, warnings)

        attempts.append(GeocodeAttempt(
            provider=GeocodeProviderName.CACHE,
            query=query,
            alias_key=a_key,
            cache_key=q_key,
            outcome=GeocodeOutcome.CACHE_MISS,
        ))

        for provider in self.providers:
            if not provider.is_configured():
                result = provider.not_configured(query, a_key, q_key)
                attempts.append(result.attempt)
                label = PROVIDER_LABELS.get(provider.name, provider.name.value)
                context.add_warning(f"{label} skipped: {provider.not_configured_message()}.")
                continue

            if not context.budget.try_consume():
                attempts.append(provider.build_attempt(
                    query, a_key, q_key, GeocodeOutcome.LIMIT_REACHED,
                    error_message=f"Lookup budget of {context.budget.max_lookups} new lookups exhausted",
                ))
                continue

            result = provider.attempt(query, a_key, q_key)
            warnings.extend(result.warnings)
            for warning in result.warnings:
                context.add_warning(warning)

            if result.hit is None:
                attempts.append(result.attempt)
                continue

            rejected = rejection_reason(result.hit.display_name, required_words)
            if rejected:
                attempts.append(result.attempt.model_copy(update={
                    "outcome": GeocodeOutcome.EMPTY_RESULT,
                    "error_message": rejected,
                }))
                warnings.append(f"{rejected} for query \"{query}\"")
                continue

            attempts.append(result.attempt)
            self.cache.store_hit(result.hit.to_cache_entry(q_key), q_key, a_key)
            return self._response(result.hit, attempts, warnings)

        return GeocodeResponse(attempts=attempts, warnings=_dedupe(warnings))

    def geocode_area(
        self,
        area_name: str,
        area_url: Optional[str] = None,
        context: Optional[RunContext] = None,
    ) -> GeocodeResponse:
        """Resolve an area centroid once per run and remember it on the context.

        Args:
            area_name: Fire-ban area name
            area_url: Area page URL; its slug is a second query candidate
            context: Run context (a throwaway one without enrichment if omitted)

        Returns:
            GeocodeResponse for the area
        """
        owns_context = context is None
        context = context or self.new_run_context(enrichment=False)
        try:
            existing = context.area_centroid(area_name)
            if existing is not None:
                return existing

            queries = [f"{normalize_label(area_name)}, {self.region_suffix}"]
            slug = self._slug_from_url(area_url)
            if slug:
                queries.append(f"{slug}, {self.region_suffix}")
            alias = f"area:{area_url or area_name}"

            attempts: List[GeocodeAttempt] = []
            warnings: List[str] = []
            response = GeocodeResponse()
            for query in _dedupe(queries):
                response = self.geocode_query(query, alias, context)
                attempts.extend(response.attempts)
                warnings.extend(response.warnings)
                if response.resolved:
                    break

            response = response.model_copy(update={
                "attempts": attempts,
                "warnings": _dedupe(warnings),
                "reason": None if response.resolved else select_failure_reason(attempts),
            })
            context.set_area_centroid(area_name, response)
            logger.info(self._outcome_line(f"Area {area_name}", response, None))
            return response
        except Exception as e:
            logger.error(f"Area geocoding failed for {area_name}: {e}")
            return GeocodeResponse(reason=f"Area geocoding failed: {e}")
        finally:
            if owns_context:
                context.close()

    def geocode_forest(
        self,
        name: str,
        area_name_hint: Optional[str] = None,
        directory_name_hint: Optional[str] = None,
        context: Optional[RunContext] = None,
    ) -> GeocodeResponse:
        """Resolve coordinates for a forest. Never raises.

        Args:
            name: Canonical (fire-ban) forest name
            area_name_hint: Fire-ban area the forest is listed under
            directory_name_hint: Matched facility-directory name, if it differs
            context: Run context (a throwaway one without enrichment if omitted)

        Returns:
            GeocodeResponse; unresolved responses carry a reason
        """
        owns_context = context is None
        context = context or self.new_run_context(enrichment=False)
        started = time.monotonic()
        try:
            response = self._geocode_forest(name, area_name_hint, directory_name_hint, context)
        except Exception as e:
            logger.error(f"Geocoding failed for {name}: {e}")
            response = GeocodeResponse(reason=f"Geocoding failed unexpectedly: {e}")
        finally:
            if owns_context:
                context.close()
        logger.info(self._outcome_line(name, response, started))
        return response

    def build_forest_queries(
        self,
        name: str,
        area_name_hint: Optional[str] = None,
        directory_name_hint: Optional[str] = None,
    ) -> List[str]:
        """Ordered, de-duplicated query candidates for a forest."""
        forest_name = normalize_label(name)
        directory_name = normalize_label(directory_name_hint or "")
        if directory_name.lower() == forest_name.lower():
            directory_name = ""
        area = normalize_label(area_name_hint or "")
        region = self.region_suffix

        queries = [f"{with_state_forest(forest_name)}, {region}"]
        if area:
            queries.append(f"{with_state_forest(forest_name)}, {area}, {region}")
        if directory_name:
            queries.append(f"{with_state_forest(directory_name)}, {region}")
        core = strip_state_forest(forest_name)
        if core:
            queries.append(f"{core}, {region}")
        if directory_name and strip_state_forest(directory_name):
            queries.append(f"{strip_state_forest(directory_name)}, {region}")
        return _dedupe(queries)

    def _geocode_forest(
        self,
        name: str,
        area_name_hint: Optional[str],
        directory_name_hint: Optional[str],
        context: RunContext,
    ) -> GeocodeResponse:
        forest_name = normalize_label(name)
        alias = f"forest:{normalize_label(area_name_hint or '')}:{forest_name}"

        word_sets = [significant_words(strip_state_forest(forest_name))]
        if directory_name_hint:
            word_sets.append(significant_words(strip_state_forest(directory_name_hint)))
        required: WordSets = tuple(dict.fromkeys(word_sets))

        attempts: List[GeocodeAttempt] = []
        warnings: List[str] = []
        for query in self.build_forest_queries(forest_name, area_name_hint, directory_name_hint):
            response = self.geocode_query(query, alias, context, required_words=required)
            attempts.extend(response.attempts)
            warnings.extend(response.warnings)
            if response.resolved:
                return response.model_copy(update={
                    "attempts": attempts,
                    "warnings": _dedupe(warnings),
                })

        area = context.area_centroid(area_name_hint)
        if area is not None and area.resolved and should_use_area_fallback(attempts):
            warnings.append(
                f"Using {normalize_label(area_name_hint)} area centroid for {forest_name}."
            )
            return GeocodeResponse(
                latitude=area.latitude,
                longitude=area.longitude,
                display_name=f"{area.display_name or area_name_hint} {AREA_FALLBACK_SUFFIX}",
                confidence=area.confidence,
                provider=area.provider,
                approximate=True,
                attempts=attempts,
                warnings=_dedupe(warnings),
            )

        return GeocodeResponse(
            attempts=attempts,
            warnings=_dedupe(warnings),
            reason=select_failure_reason(attempts + (area.attempts if area else [])),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _slug_from_url(url: Optional[str]) -> Optional[str]:
        if not url:
            return None
        segments = [s for s in urlparse(url).path.split("/") if s]
        if not segments:
            return None
        words = re.sub(r"[-_]+", " ", segments[-1]).strip()
        return words.title() if words else None

    @staticmethod
    def _response(hit: GeocodeHit, attempts: List[GeocodeAttempt], warnings: List[str]) -> GeocodeResponse:
        return GeocodeResponse(
            latitude=hit.latitude,
            longitude=hit.longitude,
            display_name=hit.display_name,
            confidence=hit.confidence,
            provider=hit.provider,
            attempts=attempts,
            warnings=_dedupe(warnings),
        )

    @staticmethod
    def _outcome_line(label: str, response: GeocodeResponse, started: Optional[float]) -> str:
        source = "CACHE_HIT" if response.cache_only and response.resolved else "LOOKUP"
        if response.approximate:
            source = "AREA_FALLBACK"
        elif not response.resolved:
            source = "UNRESOLVED"
        outcomes = ", ".join(attempt.outcome.value for attempt in response.attempts)
        elapsed = f" | {int((time.monotonic() - started) * 1000)}ms" if started is not None else ""
        return f"{label} | {source}{elapsed} | outcomes=[{outcomes}]"
