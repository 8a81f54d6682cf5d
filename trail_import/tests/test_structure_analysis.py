import unittest

from trail_import.structure_analysis import analyze_structure, has_explicit_markers, scan_free_form

MARKED_COURSE = """=== TRAIL ===
title: Vibe Coding
=== MODULE ===
title: Intro
type: theory
---
Hello
=== QUESTIONS ===
Q: What is X?
- A*
- B"""


class TestAnalyzeStructure(unittest.TestCase):
    def test_text_without_cues_scores_zero(self):
        analysis = analyze_structure("hello world\nplain words only")

        self.assertEqual(analysis.confidence, 0)
        self.assertFalse(analysis.has_structured_format)
        self.assertFalse(has_explicit_markers(analysis))
        self.assertEqual(analysis.detected_trails, 1)
        self.assertTrue(all(not criterion.met for criterion in analysis.confidence_details.criteria))

    def test_reports_five_named_criteria(self):
        analysis = analyze_structure(MARKED_COURSE)

        names = [criterion.name for criterion in analysis.confidence_details.criteria]
        self.assertEqual(
            names,
            ["trail_markers", "module_structure", "questions", "structured_elements", "free_form"],
        )
        self.assertEqual(analysis.confidence_details.max_possible_score, 100)

    def test_marked_course_scores(self):
        analysis = analyze_structure(MARKED_COURSE)

        self.assertEqual(analysis.confidence, 65)
        self.assertTrue(analysis.has_trail_markers)
        self.assertEqual(analysis.detected_modules, 1)
        self.assertEqual(analysis.detected_questions, 2)
        self.assertEqual(analysis.detected_correct_answers, 1)
        scores = {criterion.name: criterion.score for criterion in analysis.confidence_details.criteria}
        self.assertEqual(scores["trail_markers"], 20)
        self.assertEqual(scores["module_structure"], 15)
        self.assertEqual(scores["questions"], 10)
        self.assertEqual(scores["structured_elements"], 20)
        self.assertEqual(scores["free_form"], 0)

    def test_free_form_module_cues(self):
        analysis = analyze_structure("Модуль первый: основы\nтекст\nМодуль второй: практика\nтекст")

        self.assertTrue(analysis.has_structured_format)
        self.assertTrue(analysis.has_module_markers)
        self.assertEqual(analysis.detected_modules, 2)
        self.assertEqual(analysis.confidence, 30)
        self.assertEqual(analysis.free_form.matched, ("module_ordinal",))

    def test_confidence_is_bounded(self):
        text = "\n".join([MARKED_COURSE] * 10 + ["Модуль 1", "Урок 2", "Глава 3", "Тема 4", "Часть 5", "Раздел 6"])

        analysis = analyze_structure(text)

        self.assertLessEqual(analysis.confidence, 100)
        self.assertGreaterEqual(analysis.confidence, 0)
        self.assertEqual(analysis.confidence_details.percentage, analysis.confidence)

    def test_empty_text(self):
        analysis = analyze_structure("")

        self.assertEqual(analysis.confidence, 0)
        self.assertEqual(analysis.detected_modules, 0)


class TestFreeFormScan(unittest.TestCase):
    def test_counts_hits_per_heuristic(self):
        scan = scan_free_form("Lesson 1 intro. Lesson 2 more. Chapter 3 end.")

        self.assertEqual(scan.modules, 3)
        self.assertEqual(scan.confidence, 20)
        self.assertEqual(scan.matched, ("lesson_number", "chapter"))


if __name__ == "__main__":
    unittest.main()
