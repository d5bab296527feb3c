"""Extractor factory routing coverage types to coverage extractors.

Maintains a registry of coverage type → extractor and falls back to a
generic extractor for types nobody registered.
"""

from typing import Dict, List

from policylens.core.unified_llm import UnifiedLLMClient
from policylens.prompts import coverage_prompts
from policylens.services.extraction.base_extractor import normalize_coverage_type
from policylens.services.extraction.coverage_extractor import CoverageExtractor
from policylens.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ExtractorFactory:
    """Factory mapping coverage types to CoverageExtractor instances.

    Attributes:
        llm_client: Client shared by every extractor
        _registry: Normalized coverage type → extractor
        _default_extractor: Generic extractor for unregistered types
    """

    def __init__(self, llm_client: UnifiedLLMClient, max_tokens: int = 4096):
        self.llm_client = llm_client
        self.max_tokens = max_tokens
        self._registry: Dict[str, CoverageExtractor] = {}

        self._register_default_extractors()
        self._default_extractor = self._create("generic", coverage_prompts.GENERIC)

        LOGGER.info(
            "Initialized ExtractorFactory",
            extra={"registered_types": len(self._registry)}
        )

    def _create(self, name: str, spec, overrides=None) -> CoverageExtractor:
        return CoverageExtractor(
            self.llm_client,
            name=name,
            prompt_spec=spec,
            overrides=overrides,
            max_tokens=self.max_tokens,
        )

    def _register_default_extractors(self):
        self.register_extractor(
            ["general_liability", "bop"],
            self._create("general_liability", coverage_prompts.GENERAL_LIABILITY),
        )
        self.register_extractor(
            ["commercial_property"],
            self._create("commercial_property", coverage_prompts.COMMERCIAL_PROPERTY),
        )
        self.register_extractor(
            ["business_auto"],
            self._create("business_auto", coverage_prompts.BUSINESS_AUTO),
        )
        self.register_extractor(
            ["workers_compensation"],
            self._create("workers_compensation", coverage_prompts.WORKERS_COMPENSATION),
        )
        self.register_extractor(
            ["umbrella_excess"],
            self._create("umbrella_excess", coverage_prompts.UMBRELLA_EXCESS),
        )
        self.register_extractor(
            [
                "professional_liability",
                "directors_officers",
                "employment_practices",
                "cyber_liability",
                "medical_malpractice",
            ],
            self._create("claims_made_liability", coverage_prompts.CLAIMS_MADE_LIABILITY),
        )
        self.register_extractor(
            ["wind_hail", "flood", "earthquake", "difference_in_conditions"],
            self._create("property_extension", coverage_prompts.PROPERTY_EXTENSION),
        )
        self.register_extractor(
            ["inland_marine", "ocean_marine", "builders_risk", "boiler_machinery"],
            self._create("marine_equipment", coverage_prompts.MARINE_EQUIPMENT),
        )
        self.register_extractor(
            ["pollution_liability", "garage_liability", "liquor_liability", "product_liability"],
            self._create(
                "specialized_liability",
                coverage_prompts.GENERIC,
                overrides={
                    "pollution_liability": coverage_prompts.POLLUTION_LIABILITY,
                    "garage_liability": coverage_prompts.GARAGE_LIABILITY,
                    "liquor_liability": coverage_prompts.LIQUOR_LIABILITY,
                    "product_liability": coverage_prompts.PRODUCT_LIABILITY,
                },
            ),
        )
        self.register_extractor(
            ["crime_fidelity", "surety_bond", "aviation"],
            self._create(
                "crime_surety",
                coverage_prompts.CRIME_FIDELITY,
                overrides={
                    "surety_bond": coverage_prompts.SURETY_BOND,
                    "aviation": coverage_prompts.AVIATION,
                },
            ),
        )

    def register_extractor(self, coverage_types: List[str], extractor: CoverageExtractor):
        """Register an extractor for several coverage types."""
        for coverage_type in coverage_types:
            self._registry[normalize_coverage_type(coverage_type)] = extractor

        LOGGER.debug(
            f"Registered {extractor.name} extractor for {len(coverage_types)} coverage types"
        )

    def get_extractor(self, coverage_type: str) -> CoverageExtractor:
        """Return the extractor for a coverage type, or the generic one."""
        normalized = normalize_coverage_type(coverage_type)
        extractor = self._registry.get(normalized)
        if extractor is None:
            LOGGER.info(
                f"No extractor registered for coverage type '{coverage_type}', using generic",
                extra={"normalized": normalized}
            )
            return self._default_extractor
        return extractor

    def list_supported_types(self) -> List[str]:
        return sorted(self._registry.keys())
