from __future__ import annotations

import json

from prospector.services.extraction.company_parser import (
    analyze_company_size,
    calculate_company_score,
    clean_company_name,
    parse_company_data,
)


def test_size_from_prose_variants():
    assert analyze_company_size("Globex has 250 employees worldwide.") == 250
    assert analyze_company_size("Between 50-200 employees.") == 200
    assert analyze_company_size("A team of 1,200 engineers.") == 1200
    assert analyze_company_size("No size mentioned.") is None


def test_parse_merges_prose_fragments():
    attributes = parse_company_data(
        [
            "Globex Corp has 250 employees. Key services: audits, training and support.",
            "Globex is an industry leader in compliance tooling.",
        ]
    )

    assert attributes.size == 250
    assert attributes.services == ["audits", "training", "support"]
    assert attributes.differentiation == ["Globex is an industry leader in compliance tooling"]
    assert attributes.total_score == 74


def test_json_size_overrides_prose_and_lists_merge():
    payload = {
        "employeeCount": 1500,
        "services": ["Payroll"],
        "uniquePoints": ["SOC2 certified"],
        "validationPoints": ["Listed on G2"],
    }
    attributes = parse_company_data([f"Payroll firm with 40 employees. {json.dumps(payload)}"])

    assert attributes.size == 1500
    assert attributes.services == ["Payroll"]
    assert attributes.differentiation == ["SOC2 certified"]
    assert attributes.validation_points == ["Listed on G2"]
    assert attributes.total_score == 78


def test_lists_are_capped_before_scoring():
    payload = {
        "services": [f"Service {index}" for index in range(7)],
        "differentiators": [f"Edge {index}" for index in range(5)],
    }
    attributes = parse_company_data([json.dumps(payload)])

    assert len(attributes.services) == 5
    assert len(attributes.differentiation) == 3
    assert attributes.total_score == 80


def test_malformed_and_empty_fragments_are_ignored():
    attributes = parse_company_data(["", "{not json", None])  # type: ignore[list-item]

    assert attributes.size is None
    assert attributes.total_score == 50


def test_company_score_is_monotonic():
    sizes = [None, 10, 60, 200, 600, 2000]
    by_size = [calculate_company_score(size, [], []) for size in sizes]
    assert by_size == sorted(by_size)

    previous = calculate_company_score(100, [], [])
    for count in range(1, 8):
        current = calculate_company_score(100, ["edge"] * count, ["svc"] * count)
        assert current >= previous
        assert current <= 100
        previous = current


def test_clean_company_name():
    assert clean_company_name("Globex Corp - Cloud Tools") == "Globex"
    assert clean_company_name("Initech, Inc.") == "Initech"
    assert clean_company_name("Umbrella (Holdings)") == "Umbrella"


def test_prose_inside_json_strings_is_mined():
    payload = {"description": "Acme has 500 employees and offers cloud consulting services"}

    attributes = parse_company_data([json.dumps(payload)])

    assert attributes.size == 500
    assert attributes.services == ["cloud consulting services"]
    assert attributes.total_score == 63


def test_non_finite_json_size_is_ignored():
    attributes = parse_company_data(['{"size": 1e999}', '{"employeeCount": -5}'])

    assert attributes.size is None
    assert attributes.total_score == 50
