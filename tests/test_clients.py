import json

import httpx
import pytest

from prospector.clients.apollo import ApolloClient, ApolloError, ApolloRateLimitError, ApolloSchemaError
from prospector.clients.credits import CreditsClient, CreditsError
from prospector.clients.hunter import HunterAPIError, HunterClient, HunterTimeoutError
from prospector.clients.llm import parse_json_payload


def _client(handler, base_url: str) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), base_url=base_url)


def test_apollo_match_person_sends_key_and_omits_empty_fields():
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("X-Api-Key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"person": {"email": "maria@globex.com", "title": "CEO"}})

    client = ApolloClient("apollo-key", http_client=_client(handler, "https://api.apollo.io"))
    person = client.match_person(first_name="Maria", last_name="Gonzalez", organization_name="Globex")

    assert person == {"email": "maria@globex.com", "title": "CEO"}
    assert seen["path"] == "/api/v1/people/match"
    assert seen["key"] == "apollo-key"
    assert seen["body"] == {"first_name": "Maria", "last_name": "Gonzalez", "organization_name": "Globex"}


def test_apollo_no_match_returns_none():
    client = ApolloClient(
        "apollo-key",
        http_client=_client(lambda request: httpx.Response(200, json={"person": None}), "https://a"),
    )

    assert client.match_person(first_name="Maria", last_name="Gonzalez") is None


@pytest.mark.parametrize(
    ("response", "error", "code"),
    [
        (httpx.Response(429), ApolloRateLimitError, "APOLLO_429"),
        (httpx.Response(500), ApolloError, "APOLLO_500"),
        (httpx.Response(200, content=b"not json"), ApolloSchemaError, "APOLLO_SCHEMA_ERR"),
    ],
)
def test_apollo_error_mapping(response, error, code):
    client = ApolloClient("apollo-key", http_client=_client(lambda request: response, "https://a"))

    with pytest.raises(error) as excinfo:
        client.match_person(first_name="Maria", last_name="Gonzalez")

    assert excinfo.value.code == code


def test_apollo_requires_api_key():
    with pytest.raises(ValueError):
        ApolloClient("")


def test_hunter_find_email_returns_data():
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        return httpx.Response(200, json={"data": {"email": "maria@globex.com", "score": 72}, "errors": []})

    client = HunterClient("hunter-key", http_client=_client(handler, "https://api.hunter.io"))
    data = client.find_email(first_name="Maria", last_name="Gonzalez", domain="globex.com")

    assert data["score"] == 72
    assert seen["api_key"] == "hunter-key"
    assert seen["domain"] == "globex.com"
    assert "company" not in seen


def test_hunter_error_payload_raises_api_error():
    body = {"data": None, "errors": [{"id": "wrong_params", "details": "domain is invalid"}]}
    client = HunterClient(
        "hunter-key", http_client=_client(lambda request: httpx.Response(200, json=body), "https://h")
    )

    with pytest.raises(HunterAPIError) as excinfo:
        client.find_email(first_name="Maria", last_name="Gonzalez", domain="globex")

    assert excinfo.value.code == "HUNTER_API_ERROR"
    assert "domain is invalid" in str(excinfo.value)


def test_hunter_timeout_is_mapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = HunterClient("hunter-key", http_client=_client(handler, "https://h"))

    with pytest.raises(HunterTimeoutError):
        client.find_email(first_name="Maria", last_name="Gonzalez", company="Globex")


def test_credits_client_round_trip():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"balance": 180, "isBlocked": False})
        return httpx.Response(200, json={"success": True, "charged": True, "newBalance": 160})

    client = CreditsClient("https://billing", http_client=_client(handler, "https://billing"))

    assert client.get_credits() == {"balance": 180, "isBlocked": False}
    result = client.deduct_individual_email("contact-1", search_type="hunter", email_found=True)

    assert result["newBalance"] == 160
    assert requests[1].url.path == "/api/credits/deduct-individual-email"
    assert json.loads(requests[1].content) == {
        "contactId": "contact-1",
        "searchType": "hunter",
        "emailFound": True,
    }


def test_credits_client_http_error():
    client = CreditsClient(
        "https://billing", http_client=_client(lambda request: httpx.Response(503), "https://billing")
    )

    with pytest.raises(CreditsError) as excinfo:
        client.get_credits()

    assert excinfo.value.code == "CREDITS_503"


def test_parse_json_payload_tolerates_prose_and_fences():
    assert parse_json_payload('Here you go: {"a": 1} thanks') == {"a": 1}
    assert parse_json_payload('```json\n{"a": 2}\n```') == {"a": 2}
    with pytest.raises(ValueError):
        parse_json_payload("[1, 2]")
