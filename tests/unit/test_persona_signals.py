import json
import unittest
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from prospector.core.data_types import EmploymentRecord, PersonaFilter
from prospector.signals.persona import (
    SOURCE_LLM, PersonaSignal, PersonaSignalDetector, match_title, matches_persona,
)

TODAY = date(2026, 6, 1)


class TestTitleMatching(unittest.TestCase):
    def test_exact_match(self):
        self.assertEqual(match_title("VP of Engineering", ["vp of engineering"]), ("vp of engineering", True))

    def test_wildcard_match_is_partial(self):
        self.assertEqual(match_title("VP of Data Engineering", ["VP * Engineering"]), ("VP * Engineering", False))
        self.assertEqual(match_title("Head of Sales", ["VP * Engineering"]), (None, False))

    def test_substring_match(self):
        self.assertEqual(match_title("Senior Director of Engineering", ["Director of Engineering"]),
                         ("Director of Engineering", False))

    def test_fuzzy_word_order(self):
        pattern, exact = match_title("Engineering VP", ["VP Engineering"])
        self.assertEqual(pattern, "VP Engineering")
        self.assertFalse(exact)

    def test_empty_inputs(self):
        self.assertEqual(match_title(None, ["CTO"]), (None, False))
        self.assertEqual(match_title("CTO", ["", "  "]), (None, False))


class TestMatchesPersona(unittest.TestCase):
    def setUp(self):
        self.persona = PersonaFilter(
            title_patterns=["*engineering*", "CTO"],
            exclude_title_patterns=["intern"],
            seniority_levels=["vp", "director", "c_suite"],
        )

    def contact(self, title, seniority="vp", department=None):
        return SimpleNamespace(title=title, seniority=seniority, department=department)

    def test_matching_contact(self):
        self.assertTrue(matches_persona(self.contact("VP Engineering"), self.persona))

    def test_excluded_title_wins(self):
        self.assertFalse(matches_persona(self.contact("Engineering Intern"), self.persona))

    def test_seniority_must_match(self):
        self.assertFalse(matches_persona(self.contact("Engineering Manager", seniority="manager"), self.persona))

    def test_department_filter(self):
        persona = PersonaFilter(departments=["Engineering"])
        self.assertTrue(matches_persona(self.contact("Anything", department="engineering"), persona))
        self.assertFalse(matches_persona(self.contact("Anything", department="sales"), persona))

    def test_empty_persona_matches_nobody(self):
        self.assertFalse(matches_persona(self.contact("CTO"), PersonaFilter()))


class TestPersonaSignalDetector(unittest.TestCase):
    def setUp(self):
        self.detector = PersonaSignalDetector()
        self.persona = PersonaFilter(title_patterns=["VP Engineering"], seniority_levels=["vp"])

    def by_type(self, signals):
        return {s.signal_type: s.strength for s in signals}

    def test_fit_signals(self):
        signals = self.detector.detect("VP Engineering", "VP", [], self.persona, TODAY)
        self.assertEqual(self.by_type(signals), {"title_match": 0.9, "seniority_match": 0.6})

    def test_recent_job_change(self):
        history = [EmploymentRecord(company="Northwind", title="VP Engineering",
                                    start_date=date(2026, 4, 15), is_current=True)]
        signals = self.by_type(self.detector.detect("VP Engineering", "vp", history, self.persona, TODAY))
        self.assertEqual(signals["job_change"], 0.8)

        history[0].start_date = date(2026, 1, 1)
        signals = self.by_type(self.detector.detect("VP Engineering", "vp", history, self.persona, TODAY))
        self.assertEqual(signals["job_change"], 0.7)

        history[0].start_date = date(2025, 1, 1)
        signals = self.by_type(self.detector.detect("VP Engineering", "vp", history, self.persona, TODAY))
        self.assertNotIn("job_change", signals)

    def test_internal_promotion(self):
        history = [
            EmploymentRecord(company="Northwind", title="VP Engineering", start_date=date(2025, 10, 1), is_current=True),
            EmploymentRecord(company="Northwind", title="Director of Engineering",
                             start_date=date(2022, 3, 1), end_date=date(2025, 10, 1)),
        ]
        signals = self.by_type(self.detector.detect("VP Engineering", "vp", history, self.persona, TODAY))
        self.assertEqual(signals["tenure_signal"], 0.6)
        self.assertNotIn("job_change", signals)

    def test_move_to_new_company_is_not_a_promotion(self):
        history = [
            EmploymentRecord(company="Northwind", title="VP Engineering", start_date=date(2026, 5, 1), is_current=True),
            EmploymentRecord(company="Contoso", title="Director of Engineering", start_date=date(2022, 3, 1)),
        ]
        signals = self.by_type(self.detector.detect("VP Engineering", "vp", history, self.persona, TODAY))
        self.assertNotIn("tenure_signal", signals)

    def test_persona_score_blends_fit_and_events(self):
        signals = [
            PersonaSignal("title_match", 0.9, ""),
            PersonaSignal("seniority_match", 0.6, ""),
            PersonaSignal("job_change", 0.8, ""),
        ]
        fit = 0.6 * 0.9 + 0.4 * 0.6
        self.assertEqual(PersonaSignalDetector.persona_score(signals), round(0.6 * fit + 0.4 * 0.8, 2))
        self.assertEqual(PersonaSignalDetector.persona_score([]), 0.0)

    def test_exact_fit_without_career_events_reaches_threshold(self):
        signals = self.detector.detect("VP Engineering", "vp", [], self.persona, TODAY)
        score = PersonaSignalDetector.persona_score(signals)
        self.assertEqual(score, 0.78)
        self.assertGreaterEqual(score, 0.5)

    def test_partial_signal_sets_are_normalised(self):
        self.assertEqual(PersonaSignalDetector.persona_score([PersonaSignal("title_match", 0.6, "")]), 0.6)
        only_tenure = [PersonaSignal("title_match", 0.9, ""), PersonaSignal("tenure_signal", 0.8, "")]
        self.assertEqual(PersonaSignalDetector.persona_score(only_tenure), round(0.6 * 0.9 + 0.4 * 0.8, 2))


def llm_returning(payload):
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=payload if isinstance(payload, str) else json.dumps(payload))
    return llm


class TestCareerAnalysis(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.persona = PersonaFilter(title_patterns=["VP Engineering"], seniority_levels=["vp"])
        self.contact = SimpleNamespace(id=7, title="VP Engineering", seniority="vp", department="engineering")
        self.history = [
            EmploymentRecord(company="Northwind", title="VP Engineering", start_date=date(2025, 10, 1), is_current=True),
            EmploymentRecord(company="Contoso", title="Director of Engineering",
                             start_date=date(2022, 3, 1), end_date=date(2025, 9, 1)),
        ]

    async def test_keeps_valid_signals_above_cutoff(self):
        llm = llm_returning([
            {"type": "tenure_signal", "strength": 0.7, "evidence": "Moved up from director"},
            {"type": "job_change", "strength": 0.4, "evidence": "weak"},
            {"type": "budget_owner", "strength": 0.9, "evidence": "not a persona signal"},
            {"type": "title_match", "strength": 1.4, "evidence": "exact"},
        ])
        detector = PersonaSignalDetector(llm)

        signals = await detector.detect_llm(self.contact, self.history, self.persona)

        self.assertEqual([(s.signal_type, s.strength) for s in signals], [("tenure_signal", 0.7), ("title_match", 1.0)])
        self.assertTrue(all(s.source == SOURCE_LLM for s in signals))
        prompt = llm.complete.call_args.args[0]
        self.assertIn("Director of Engineering at Contoso (2022-03-01 - 2025-09-01)", prompt)

    async def test_single_record_history_skips_the_llm(self):
        llm = llm_returning([])
        detector = PersonaSignalDetector(llm)

        self.assertEqual(await detector.detect_llm(self.contact, self.history[:1], self.persona), [])
        llm.complete.assert_not_called()

    async def test_failures_and_garbage_yield_nothing(self):
        llm = MagicMock()
        llm.complete = AsyncMock(side_effect=RuntimeError("provider down"))
        self.assertEqual(await PersonaSignalDetector(llm).detect_llm(self.contact, self.history, self.persona), [])

        detector = PersonaSignalDetector(llm_returning("Nothing notable about this person."))
        self.assertEqual(await detector.detect_llm(self.contact, self.history, self.persona), [])

    async def test_without_llm_nothing_is_called(self):
        self.assertEqual(await PersonaSignalDetector().detect_llm(self.contact, self.history, self.persona), [])


if __name__ == "__main__":
    unittest.main()
