import pytest

from maestro.failures import classify_failure
from maestro.models import Domain


def test_endpoint_failure_routes_to_interface() -> None:
    domain = classify_failure(
        "Create integration tests",
        "Tests failed",
        {"message": "POST /users endpoint returned wrong status code"},
    )

    assert domain == Domain.INTERFACE


@pytest.mark.parametrize(
    ("description", "details", "expected"),
    [
        ("Create fragment tests for components", {}, Domain.MARKUP),
        ("Verify implementation", {"stack": "at PrismaClient.executeQuery"}, Domain.SCHEMA),
        ("Verify implementation", {"message": "403 Forbidden for user"}, Domain.AUTHORIZATION),
        ("Create unit tests for billing logic", {}, Domain.DEVELOPMENT),
        ("Verify implementation", {"failures": ["UserService.create should validate"]}, Domain.DEVELOPMENT),
    ],
)
def test_keyword_buckets(description: str, details: dict, expected: Domain) -> None:
    assert classify_failure(description, details=details) == expected


def test_buckets_are_checked_in_priority_order() -> None:
    # Matches both the interface and the schema buckets.
    domain = classify_failure("Verify implementation", "api query failed")

    assert domain == Domain.INTERFACE


def test_explicit_failure_domain_wins() -> None:
    domain = classify_failure(
        "Create API integration tests", details={"failure_domain": "schema"}
    )

    assert domain == Domain.SCHEMA


@pytest.mark.parametrize("tag", ["testing", "nonsense", 42])
def test_invalid_explicit_tags_fall_back_to_keywords(tag: object) -> None:
    domain = classify_failure("Create API integration tests", details={"failure_domain": tag})

    assert domain == Domain.INTERFACE


def test_unmatched_text_defaults_to_development() -> None:
    assert classify_failure("Verify implementation", "2 assertions failed") == Domain.DEVELOPMENT
    assert classify_failure("") == Domain.DEVELOPMENT


def test_errors_are_part_of_the_evidence() -> None:
    domain = classify_failure("Verify implementation", errors=["login redirect broken"])

    assert domain == Domain.AUTHORIZATION
