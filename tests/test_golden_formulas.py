"""
Golden formula cases for evaluator regression testing.
These capture the expected results of the formula language and should
fail if parsing, precedence or rounding changes unexpectedly.
"""
import csv
import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from priceflow.engine import errors
from priceflow.engine.formula_evaluator import evaluate


def load_golden_cases():
    """Load golden formula cases from CSV."""
    cases_path = os.path.join(os.path.dirname(__file__), 'golden_formulas.csv')

    cases = []
    with open(cases_path, 'r', newline='', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        for row in reader:
            cases.append(row)

    return cases


def parse_bindings(text):
    bindings = {}
    for pair in filter(None, (text or '').split(';')):
        name, _, value = pair.partition('=')
        bindings[name.strip()] = float(value)
    return bindings


@pytest.mark.parametrize("case", load_golden_cases(), ids=lambda c: c['formula'].strip() or '<blank>')
def test_golden_formula(case):
    """Evaluation matches the golden result or raises the golden error."""
    bindings = parse_bindings(case['bindings'])

    if case['error']:
        error_class = getattr(errors, case['error'])
        with pytest.raises(error_class):
            evaluate(case['formula'], bindings)
        return

    expected = float(case['expected'])
    result = evaluate(case['formula'], bindings)
    assert result == expected, \
        f"{case['formula']!r}: expected {expected}, got {result}"
