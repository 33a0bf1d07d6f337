"""
Tests for alternative-medication ranking.
"""

import pytest

from pa_engine.evaluation.alternatives import (
    CandidateMedication, rank_alternatives, rank_alternatives_async, score_candidate,
)
from pa_engine.evaluation.coverage_lookup import CoverageCatalog
from pa_engine.evaluation.drug_metadata import StaticDrugMetadataProvider
from pa_engine.evaluation.pipeline import ApprovalEngine

from conftest import AS_OF, make_patient

PLAN = "Test Plan"

_BMI_30 = {"criteria": [{"type": "bmi", "minBMI": 30}]}

RANKING_CATALOG = {
    PLAN: {
        "Wegovy": {"criteria": [{"type": "bmi", "minBMI": 35}]},
        "Ozempic": _BMI_30,
        "Zepbound": _BMI_30,
        "Saxenda": _BMI_30,
        "Mounjaro": {"covered": False},
        "Trulicity": {"criteria": [{"type": "age", "minAge": 18}, {"type": "weightProgram"}]},
    }
}


@pytest.fixture
def pool(references, settings):
    engine = ApprovalEngine(CoverageCatalog.from_mapping(RANKING_CATALOG), references, settings=settings)
    return engine.candidate_pool(PLAN)


def _rank(pool, current_likelihood=20, **kwargs):
    return rank_alternatives(make_patient(), "Wegovy", None, current_likelihood, pool, as_of=AS_OF, **kwargs)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class TestScoring:
    def test_candidate_scored_at_starting_dose(self, pool):
        trulicity = next(c for c in pool if c.reference.name == "Trulicity")
        assert score_candidate(make_patient(), trulicity, as_of=AS_OF).likelihood == 60

    def test_uncovered_candidate_scores_zero(self, pool):
        mounjaro = next(c for c in pool if c.reference.name == "Mounjaro")
        assert score_candidate(make_patient(), mounjaro, as_of=AS_OF).likelihood == 0


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

class TestRanking:
    def test_ties_keep_reference_order(self, pool):
        alternatives = _rank(pool)
        assert [a.medication for a in alternatives] == ["Ozempic", "Zepbound", "Saxenda"]
        assert alternatives[0].improvement_over_current == 80
        assert alternatives[0].suggested_dose == "0.25 mg"

    def test_truncated_to_max_results(self, pool):
        assert [a.medication for a in _rank(pool, max_results=1)] == ["Ozempic"]
        assert [a.medication for a in _rank(pool, max_results=5)][-1] == "Trulicity"

    def test_only_strictly_better_candidates(self, pool):
        assert "Trulicity" not in [a.medication for a in _rank(pool, current_likelihood=60, max_results=5)]
        assert _rank(pool, current_likelihood=100) == []

    def test_uncovered_candidates_excluded(self, pool):
        assert "Mounjaro" not in [a.medication for a in _rank(pool, max_results=5)]

    def test_candidate_without_coverage_excluded(self, pool):
        trimmed = [
            CandidateMedication(reference=c.reference, coverage=None) if c.reference.name == "Ozempic" else c
            for c in pool
        ]
        assert [a.medication for a in _rank(trimmed)] == ["Zepbound", "Saxenda", "Trulicity"]

    def test_current_drug_not_in_pool(self, pool):
        assert rank_alternatives(make_patient(), "Contrave", None, 0, pool, as_of=AS_OF) == []

    def test_current_drug_never_suggested(self, pool):
        assert "Wegovy" not in [a.medication for a in _rank(pool, current_likelihood=0, max_results=10)]


# ---------------------------------------------------------------------------
# Concurrent ranking
# ---------------------------------------------------------------------------

class TestRankAlternativesAsync:
    async def test_matches_sync_ranking(self, pool):
        sync = _rank(pool)
        concurrent = await rank_alternatives_async(make_patient(), "Wegovy", None, 20, pool, as_of=AS_OF)
        assert concurrent == sync

    async def test_metadata_factors_attached(self, pool, references):
        alternatives = await rank_alternatives_async(
            make_patient(), "Wegovy", None, 20, pool, as_of=AS_OF,
            metadata_provider=StaticDrugMetadataProvider(references),
        )
        assert [a.medication for a in alternatives] == ["Ozempic", "Zepbound", "Saxenda"]
        assert all(a.rxnorm_validated for a in alternatives)
        assert alternatives[0].factors
