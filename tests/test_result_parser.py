import json

import pytest

from codegrade.core.exceptions import MalformedVerdictError
from codegrade.services.result_parser import result_parser

MARKER = "__CODEGRADE_VERDICT_test__"


def _verdict(**fields):
    payload = {"passed": 1, "total": 2, "output": "Test 1: PASS\nTest 2: FAIL\n", "tests": []}
    payload.update(fields)
    return json.dumps(payload)


def test_stdout_without_marker_is_returned_verbatim():
    parsed = result_parser.parse("hello\nworld\n", MARKER)
    assert parsed.display_output == "hello\nworld\n"
    assert parsed.tests_passed is None
    assert parsed.tests_total is None
    assert parsed.test_details is None


def test_marker_and_verdict():
    parsed = result_parser.parse(f"{MARKER}\n{_verdict()}\n", MARKER)
    assert parsed.tests_passed == 1
    assert parsed.tests_total == 2
    assert parsed.display_output == "Test 1: PASS\nTest 2: FAIL\n"


def test_program_output_before_marker_is_kept():
    parsed = result_parser.parse(f"debug line\n{MARKER}\n{_verdict(output='Test 1: PASS')}\n", MARKER)
    assert parsed.display_output == "debug line\nTest 1: PASS"


def test_output_without_trailing_newline_runs_into_marker():
    verdict = _verdict(passed=1, total=1, output="Test 1: PASS\n")
    parsed = result_parser.parse(f"debug{MARKER}\n{verdict}\n", MARKER)
    assert parsed.tests_passed == 1
    assert parsed.tests_total == 1
    assert parsed.display_output == "debug\nTest 1: PASS\n"
    assert MARKER not in parsed.display_output


def test_unterminated_line_after_complete_lines():
    stdout = f"first\nsecond{MARKER}\r\n{_verdict(output='Test 1: PASS')}\r\n"
    parsed = result_parser.parse(stdout, MARKER)
    assert parsed.display_output == "first\nsecond\nTest 1: PASS"


def test_windows_line_endings():
    parsed = result_parser.parse(f"{MARKER}\r\n{_verdict()}\r\n", MARKER)
    assert parsed.tests_total == 2


def test_per_test_details_are_decoded():
    tests = [{"index": 1, "input": "a", "expected": "A", "actual": "A", "passed": True}]
    parsed = result_parser.parse(f"{MARKER}\n{_verdict(passed=1, total=1, tests=tests)}\n", MARKER)
    assert parsed.test_details[0].actual == "A"
    assert parsed.test_details[0].passed is True


@pytest.mark.parametrize(
    "stdout",
    [
        f"{MARKER}\n",
        f"{MARKER}\nnot json\n",
        f"{MARKER}\n" + json.dumps({"passed": "3", "total": 5, "output": ""}) + "\n",
        f"{MARKER}\n" + json.dumps({"total": 5, "output": ""}) + "\n",
        f"{MARKER}\n" + json.dumps({"passed": 6, "total": 5, "output": ""}) + "\n",
    ],
)
def test_malformed_payloads(stdout):
    with pytest.raises(MalformedVerdictError) as exc_info:
        result_parser.parse(stdout, MARKER)
    assert exc_info.value.message == "malformed test result payload"
    assert exc_info.value.error_type == "malformed_verdict"
