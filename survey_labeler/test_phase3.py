"""
Tests for Phase 3: Tree Scanning and Pairing
"""
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from survey_labeler.rules import Rules, compile_rules
from survey_labeler.file_scanner import TreeScanner, SurveySide, SurveyUnit, UNCLASSIFIED_KEY
from survey_labeler.pairing import PairingResolver, PairingStatus, select_candidate
from survey_labeler.records import ProblemType
from survey_labeler.exceptions import ScanError


def _touch(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"sample")


def _unit(base_key: str, side: SurveySide, root: str, count: int) -> SurveyUnit:
    root_path = Path(root)
    return SurveyUnit(
        base_key=base_key,
        side=side,
        root=root_path,
        files=tuple(root_path / f"img_{i:03d}.jpg" for i in range(1, count + 1)),
    )


def test_scan_groups_files():
    """Files belong to their nearest keyed ancestor; others are unclassified."""
    print("\n" + "=" * 60)
    print("TREE SCANNER TEST")
    print("=" * 60)
    with tempfile.TemporaryDirectory() as tmpdir:
        raw = Path(tmpdir) / 'Raw'
        _touch(raw / '2025' / '01' / '20250101_AB' / 'img_001.jpg')
        _touch(raw / '2025' / '01' / '20250101_AB' / 'IMG_002.JPG')
        _touch(raw / '2025' / '01' / '20250101_AB' / 'sub' / 'img_003.jpg')
        _touch(raw / '2025' / '01' / '20250101_AB' / 'notes.txt')
        _touch(raw / 'misc' / 'stray.jpg')

        scanner = TreeScanner(compile_rules(Rules.default()))
        result = scanner.scan(raw, SurveySide.RAW)
        print(result)

        assert list(result.candidates) == ['20250101_AB']
        unit = result.candidates['20250101_AB'][0]
        assert unit.side is SurveySide.RAW
        assert unit.root.name == '20250101_AB'
        assert unit.detected_id == '20250101_AB'
        assert [unit.relpath(f) for f in unit.files] == ['IMG_002.JPG', 'img_001.jpg', 'sub/img_003.jpg']
        assert result.files_accepted == 4
        assert result.files_unclassified == 1

        assert len(result.problems) == 1
        problem = result.problems[0]
        assert problem.problem_type is ProblemType.UNCLASSIFIED
        assert problem.survey_id_base == UNCLASSIFIED_KEY
        assert problem.raw_path.endswith('misc')
        assert problem.graded_path is None
    print("[PASS] Tree scanner test passed")


def test_scan_keyed_root():
    """A root whose own name is a survey id is a survey unit."""
    with tempfile.TemporaryDirectory() as tmpdir:
        graded = Path(tmpdir) / '20250101_AB_CD'
        _touch(graded / 'img_001.jpg')
        _touch(graded / 'IND' / 'img_003.jpg')

        result = TreeScanner(compile_rules(Rules.default())).scan(graded, SurveySide.GRADED)
        unit = result.candidates['20250101_AB'][0]
        assert unit.root == graded.resolve()
        assert unit.detected_id == '20250101_AB_CD'
        assert unit.file_count == 2
        assert not result.problems
    print("[PASS] Keyed root test passed")


def test_scan_keeps_duplicate_keys_apart():
    """Directories sharing a base key stay separate candidates."""
    with tempfile.TemporaryDirectory() as tmpdir:
        graded = Path(tmpdir) / 'Graded'
        _touch(graded / '20250101_AB_CD' / 'img_001.jpg')
        _touch(graded / 'old' / '20250101_AB' / 'img_001.jpg')

        result = TreeScanner(compile_rules(Rules.default())).scan(graded, SurveySide.GRADED)
        units = result.candidates['20250101_AB']
        assert len(units) == 2
        assert {u.detected_id for u in units} == {'20250101_AB_CD', '20250101_AB'}
    print("[PASS] Duplicate keys test passed")


def test_scan_missing_root():
    """A missing root is fatal for the run."""
    scanner = TreeScanner(compile_rules(Rules.default()))
    with tempfile.TemporaryDirectory() as tmpdir:
        try:
            scanner.scan(Path(tmpdir) / 'nope', SurveySide.RAW)
            assert False, "missing root should raise"
        except ScanError as e:
            assert 'nope' in str(e)

        a_file = Path(tmpdir) / 'file.jpg'
        _touch(a_file)
        try:
            scanner.scan(a_file, SurveySide.RAW)
            assert False, "file root should raise"
        except ScanError:
            pass
    print("[PASS] Missing root test passed")


def test_scan_unreadable_subtree():
    """An unreadable directory is a problem for its owning survey; siblings still scan."""
    real_scandir = os.scandir

    def guarded(path='.'):
        if Path(path).name in ('locked', 'locked2'):
            raise PermissionError(13, 'Permission denied', str(path))
        return real_scandir(path)

    with tempfile.TemporaryDirectory() as tmpdir:
        raw = Path(tmpdir) / 'Raw'
        _touch(raw / '20250101_AB' / 'img_001.jpg')
        _touch(raw / '20250101_AB' / 'locked' / 'img_009.jpg')
        _touch(raw / 'misc' / 'locked2' / 'img_010.jpg')

        with patch('os.scandir', guarded):
            result = TreeScanner(compile_rules(Rules.default())).scan(raw, SurveySide.RAW)

        problems = sorted(result.problems, key=lambda p: p.survey_id_base)
        for p in problems:
            print(f"  {p.survey_id_base}: {p.problem_type.value} {p.raw_path}")
        assert [p.survey_id_base for p in problems] == ['20250101_AB', UNCLASSIFIED_KEY]
        assert all(p.problem_type is ProblemType.SCAN_ERROR for p in problems)
        assert problems[0].raw_path.endswith('locked')
        assert problems[1].raw_path.endswith('locked2')
        assert all(p.graded_path is None for p in problems)
        assert 'unreadable directory' in problems[0].details

        unit = result.candidates['20250101_AB'][0]
        assert [unit.relpath(f) for f in unit.files] == ['img_001.jpg']
        assert result.files_unclassified == 0
    print("[PASS] Unreadable subtree test passed")


def test_collect_unit():
    """Single-pair collection takes nested survey directories too."""
    with tempfile.TemporaryDirectory() as tmpdir:
        directory = Path(tmpdir) / 'anything'
        _touch(directory / 'img_001.jpg')
        _touch(directory / '20250109_ZZ' / 'img_002.jpg')
        _touch(directory / 'readme.md')

        unit, problems = TreeScanner(compile_rules(Rules.default())).collect_unit(
            directory, SurveySide.GRADED, 'OVERRIDE')
        assert unit.base_key == 'OVERRIDE'
        assert [unit.relpath(f) for f in unit.files] == ['20250109_ZZ/img_002.jpg', 'img_001.jpg']
        assert problems == []
    print("[PASS] Collect unit test passed")


def test_select_candidate():
    """Most files wins, ties go to the smallest root path."""
    a = _unit('K', SurveySide.RAW, '/data/b/K', 3)
    b = _unit('K', SurveySide.RAW, '/data/a/K', 3)
    c = _unit('K', SurveySide.RAW, '/data/c/K', 5)

    winner, others = select_candidate([a, b, c])
    assert winner is c
    assert others == (b, a)

    winner, others = select_candidate([a, b])
    assert winner is b
    assert others == (a,)

    assert select_candidate([]) == (None, ())
    print("[PASS] Candidate selection test passed")


def test_pairing_statuses():
    """Every base key yields exactly one PairedSurvey, ordered by key."""
    print("\n" + "=" * 60)
    print("PAIRING TEST")
    print("=" * 60)
    raw = {
        '20250101_AB': [_unit('20250101_AB', SurveySide.RAW, '/raw/20250101_AB', 3)],
        '20250103_EF': [_unit('20250103_EF', SurveySide.RAW, '/raw/20250103_EF', 1)],
        '20250105_IJ': [_unit('20250105_IJ', SurveySide.RAW, '/raw/20250105_IJ', 2)],
    }
    graded = {
        '20250104_GH': [_unit('20250104_GH', SurveySide.GRADED, '/graded/20250104_GH', 1)],
        '20250101_AB': [_unit('20250101_AB', SurveySide.GRADED, '/graded/20250101_AB_CD', 2)],
        '20250105_IJ': [
            _unit('20250105_IJ', SurveySide.GRADED, '/graded/old/20250105_IJ', 1),
            _unit('20250105_IJ', SurveySide.GRADED, '/graded/20250105_IJ_KL', 2),
        ],
    }

    paired = PairingResolver().pair(raw, graded)
    for p in paired:
        print(f"  {p.base_key}: {p.status.value} {p.details or ''}")

    assert [p.base_key for p in paired] == ['20250101_AB', '20250103_EF', '20250104_GH', '20250105_IJ']
    by_key = {p.base_key: p for p in paired}

    ok = by_key['20250101_AB']
    assert ok.status is PairingStatus.OK
    assert ok.problem is None
    assert ok.is_classifiable
    assert ok.raw_image_count == 3 and ok.graded_image_count == 2

    raw_orphan = by_key['20250103_EF']
    assert raw_orphan.status is PairingStatus.RAW_ORPHAN
    assert raw_orphan.problem_type is ProblemType.RAW_ORPHAN
    assert raw_orphan.problem.raw_path == str(Path('/raw/20250103_EF'))
    assert not raw_orphan.is_classifiable

    graded_orphan = by_key['20250104_GH']
    assert graded_orphan.status is PairingStatus.GRADED_ORPHAN
    assert graded_orphan.problem_type is ProblemType.GRADED_ORPHAN
    assert graded_orphan.graded_image_count == 1
    assert graded_orphan.raw_image_count is None

    ambiguous = by_key['20250105_IJ']
    assert ambiguous.status is PairingStatus.AMBIGUOUS
    assert ambiguous.problem_type is ProblemType.MULTIPLE_MATCHES
    assert ambiguous.graded.root == Path('/graded/20250105_IJ_KL')
    assert str(Path('/graded/old/20250105_IJ')) in ambiguous.details
    assert ambiguous.is_classifiable

    item = ambiguous.to_preview_item()
    assert item['status'] == 'Ambiguous'
    assert item['problem_type'] == 'multiple_matches'
    assert item['graded_image_count'] == 2
    print("[PASS] Pairing test passed")


def test_pairing_order_independent():
    """Re-ordered scan results give the same pairing."""
    units = [
        _unit('K', SurveySide.GRADED, '/g/one/K', 2),
        _unit('K', SurveySide.GRADED, '/g/two/K', 2),
    ]
    raw = {'K': [_unit('K', SurveySide.RAW, '/r/K', 1)], 'A': [_unit('A', SurveySide.RAW, '/r/A', 1)]}
    first = PairingResolver().pair(raw, {'K': units})
    second = PairingResolver().pair(dict(reversed(list(raw.items()))), {'K': list(reversed(units))})
    assert first == second
    print("[PASS] Order independence test passed")


def run_all_tests():
    """Run all Phase 3 tests."""
    print("=" * 50)
    print("PHASE 3 TESTS: Scanning and Pairing")
    print("=" * 50)

    tests = [
        ("Scan grouping", test_scan_groups_files),
        ("Keyed root", test_scan_keyed_root),
        ("Duplicate keys", test_scan_keeps_duplicate_keys_apart),
        ("Missing root", test_scan_missing_root),
        ("Unreadable subtree", test_scan_unreadable_subtree),
        ("Collect unit", test_collect_unit),
        ("Candidate selection", test_select_candidate),
        ("Pairing statuses", test_pairing_statuses),
        ("Order independence", test_pairing_order_independent),
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
