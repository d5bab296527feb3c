"""Vector similarity retrieval over embedded chunks."""

from policylens.services.retrieval.semantic_search_service import SemanticSearchService, rank_results

__all__ = ["SemanticSearchService", "rank_results"]
