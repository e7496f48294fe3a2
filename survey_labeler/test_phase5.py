"""
Tests for Phase 5: Reports, Run Summary and Checker
"""
import sys
import tempfile
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from survey_labeler.config import IMAGE_COLUMNS, PROBLEM_COLUMNS
from survey_labeler.records import (
    ImageRecord, ProblemRecord, ProblemType, DolphinLabel, RunSummary,
)
from survey_labeler.report_manager import ReportManager, images_frame
from survey_labeler.checker import ReportChecker
from survey_labeler.exceptions import OutputWriteError


IMAGE_HEADER = ",".join(IMAGE_COLUMNS)
PROBLEM_HEADER = ",".join(PROBLEM_COLUMNS)


def _records():
    return [
        ImageRecord('20250101_AB', 'img_003.jpg', 'img_003.jpg', DolphinLabel.YES,
                    graded_relpath='img_003.jpg', graded_hits=1, winner_type='positive_token',
                    survey_id_raw_detected='20250101_AB', survey_id_graded_detected='20250101_AB_CD'),
        ImageRecord('20250101_AB', 'img_002.jpg', 'img_002.jpg', DolphinLabel.NO,
                    survey_id_raw_detected='20250101_AB', survey_id_graded_detected='20250101_AB_CD'),
        ImageRecord('20250100_ZZ', 'a.jpg', 'a.jpg', DolphinLabel.YES, graded_relpath='a.jpg',
                    graded_hits=3, winner_type='secondary_token:best', ambiguous=True),
    ]


def test_image_report():
    """Rows are sorted, labels rendered as 1/0, missing values empty."""
    print("\n" + "=" * 60)
    print("IMAGE REPORT TEST")
    print("=" * 60)
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = ReportManager(Path(tmpdir))
        path = manager.write_images('merged.csv', _records())
        content = path.read_text(encoding='utf-8')
        print(content)
        assert content.splitlines() == [
            IMAGE_HEADER,
            "20250100_ZZ,a.jpg,a.jpg,1,a.jpg,3,secondary_token:best,,",
            "20250101_AB,img_002.jpg,img_002.jpg,0,,0,,20250101_AB,20250101_AB_CD",
            "20250101_AB,img_003.jpg,img_003.jpg,1,img_003.jpg,1,positive_token,20250101_AB,20250101_AB_CD",
        ]
        assert '\r' not in content
    print("[PASS] Image report test passed")


def test_empty_reports_have_headers():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = ReportManager(Path(tmpdir))
        images = manager.write_images('empty.csv', [])
        problems = manager.write_problems('nested/problems.csv', [])
        assert images.read_text(encoding='utf-8') == IMAGE_HEADER + "\n"
        assert problems.read_text(encoding='utf-8') == PROBLEM_HEADER + "\n"
        assert len(images_frame([])) == 0
    print("[PASS] Empty report test passed")


def test_problem_report_quoting():
    """Fields with commas or quotes are quoted, quotes doubled."""
    problems = [
        ProblemRecord('20250104_GH', ProblemType.GRADED_ORPHAN, 'No raw survey folder found.',
                      survey_id_detected='20250104_GH', graded_path='/g/20250104_GH'),
        ProblemRecord('20250103_EF', ProblemType.RAW_ORPHAN, 'has, comma and "quote"',
                      raw_path='/r/20250103_EF'),
    ]
    with tempfile.TemporaryDirectory() as tmpdir:
        path = ReportManager(Path(tmpdir)).write_problems('problems.csv', problems)
        lines = path.read_text(encoding='utf-8').splitlines()
        assert lines == [
            PROBLEM_HEADER,
            '20250103_EF,,/r/20250103_EF,,raw_orphan,"has, comma and ""quote"""',
            '20250104_GH,20250104_GH,,/g/20250104_GH,graded_orphan,No raw survey folder found.',
        ]
    print("[PASS] Problem report test passed")


def test_per_survey_reports():
    with tempfile.TemporaryDirectory() as tmpdir:
        records = _records()
        by_survey = {}
        for r in records:
            by_survey.setdefault(r.survey_id_base, []).append(r)
        paths = ReportManager(Path(tmpdir)).write_per_survey('per_survey', by_survey)
        assert [p.name for p in paths] == ['20250100_ZZ.csv', '20250101_AB.csv']
        assert len(paths[1].read_text(encoding='utf-8').splitlines()) == 3
    print("[PASS] Per-survey report test passed")


def test_write_failure():
    """A write failure raises OutputWriteError."""
    with tempfile.TemporaryDirectory() as tmpdir:
        blocker = Path(tmpdir) / 'blocker'
        blocker.write_text('not a directory', encoding='utf-8')
        try:
            ReportManager(blocker).write_images('merged.csv', _records())
            assert False, "writing below a file should fail"
        except OutputWriteError as e:
            assert e.path is not None
    print("[PASS] Write failure test passed")


def test_write_failure_names_written_files():
    """A failure after earlier reports names the files already on disk."""
    with tempfile.TemporaryDirectory() as tmpdir:
        out = Path(tmpdir) / 'out'
        reports = ReportManager(out)
        merged = reports.write_images('merged.csv', _records())
        (out / 'per_survey').write_text('not a directory', encoding='utf-8')
        try:
            reports.write_per_survey('per_survey', {'20250101_AB': _records()[:2]})
            assert False, "per-survey directory is blocked"
        except OutputWriteError as e:
            print(f"  {e}")
            assert e.path == out / 'per_survey' / '20250101_AB.csv'
            assert e.written == [merged]
            assert str(merged) in str(e)
        assert not (out / 'problems.csv').exists()
    print("[PASS] Partial write failure test passed")


def test_run_summary():
    problems = [ProblemRecord('X', ProblemType.RAW_ORPHAN)]
    summary = RunSummary.from_records(_records(), problems, processed_surveys=2, output_dir=Path('/out'))
    print(f"  {summary}")
    assert summary.total_rows == 3
    assert summary.dolphin_yes == 2
    assert summary.dolphin_no == 1
    assert summary.ambiguity_warnings == 1
    assert summary.problems_count == 1
    assert summary.output_dir == str(Path('/out'))
    assert not summary.cancelled
    assert summary.to_dict()['dolphin_yes'] == 2
    print("[PASS] Run summary test passed")


def test_checker():
    """Checker accepts consistent reports and flags row mismatches."""
    print("\n" + "=" * 60)
    print("CHECKER TEST")
    print("=" * 60)
    with tempfile.TemporaryDirectory() as tmpdir:
        out = Path(tmpdir)
        records = _records()
        manager = ReportManager(out)
        manager.write_images('merged.csv', records)
        manager.write_per_survey('per_survey', {
            '20250100_ZZ': [r for r in records if r.survey_id_base == '20250100_ZZ'],
            '20250101_AB': [r for r in records if r.survey_id_base == '20250101_AB'],
        })
        manager.write_problems('problems.csv', [])
        summary = RunSummary.from_records(records, [], processed_surveys=2, output_dir=out)

        checker = ReportChecker(out)
        report = checker.run_checks(summary)
        checker.print_report(report)
        assert report.ok, report.issues
        assert report.merged_rows == 3
        assert report.per_survey_rows == 3
        assert report.dolphin_yes == 2 and report.dolphin_no == 1
        assert report.problems_rows == 0

        # Drop one per-survey file: merged no longer equals the per-survey sum
        (out / 'per_survey' / '20250100_ZZ.csv').unlink()
        report = checker.run_checks(summary)
        assert not report.ok
        assert any('per-survey rows' in issue for issue in report.issues)

        # Summary disagreeing with the reports
        bad_summary = RunSummary.from_records(records[:1], [], processed_surveys=1, output_dir=out)
        report = ReportChecker(out, per_survey_dirname='absent').run_checks(bad_summary)
        assert any('total_rows' in issue for issue in report.issues)

    try:
        ReportChecker(Path(tmpdir) / 'gone')
        assert False, "missing output dir should raise"
    except ValueError:
        pass
    print("[PASS] Checker test passed")


def run_all_tests():
    """Run all Phase 5 tests."""
    print("=" * 50)
    print("PHASE 5 TESTS: Reports and Checker")
    print("=" * 50)

    tests = [
        ("Image report", test_image_report),
        ("Empty reports", test_empty_reports_have_headers),
        ("Problem report", test_problem_report_quoting),
        ("Per-survey reports", test_per_survey_reports),
        ("Write failure", test_write_failure),
        ("Partial write failure", test_write_failure_names_written_files),
        ("Run summary", test_run_summary),
        ("Checker", test_checker),
    ]

    passed = 0
    for name, test in tests:
        try:
            test()
            passed += 1
        except AssertionError as e:
            print(f"✗ {name} failed: {e}")

    print("\n" + "=" * 50)
    print(f"Total: {passed}/{len(tests)} passed")
    return passed == len(tests)


if __name__ == "__main__":
    success = run_all_tests()
    sys.exit(0 if success else 1)
