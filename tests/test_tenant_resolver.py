"""Tenant resolution from header, subdomain and session, with caching."""

import json
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from bizhub.cache import TTLCache
from bizhub.rbac import AccessServiceError, TenantInactive, TenantMismatch, TenantNotFound
from bizhub.tenant import TenantResolver, extract_subdomain

from .fakes import make_request


@pytest.fixture
def resolver(store, clock):
    return TenantResolver(store, TTLCache(ttl=600, clock=clock))


@pytest.mark.parametrize(
    "host, expected",
    [
        ("acme.bizhub.local", "acme"),
        ("acme.bizhub.local:8000", "acme"),
        ("ACME.BizHub.Local", "acme"),
        ("bizhub.local", None),
        ("www.bizhub.local", None),
        ("acme.localhost:8000", "acme"),
        ("localhost", None),
        ("127.0.0.1:8000", None),
        ("evil.example.com", None),
        (None, None),
    ],
)
def test_extract_subdomain(host, expected):
    assert extract_subdomain(host, "bizhub.local") == expected


async def test_resolves_from_tenant_header(resolver, factory):
    tenant_id = factory.tenant("acme")

    ctx = await resolver.resolve(make_request(headers={"X-Tenant-ID": tenant_id}))

    assert ctx.id == tenant_id
    assert ctx.subdomain == "acme"
    assert ctx.source == "header"


async def test_resolves_from_subdomain(resolver, factory):
    tenant_id = factory.tenant("acme")

    ctx = await resolver.resolve(make_request(headers={"Host": "acme.bizhub.local"}))

    assert ctx.id == tenant_id
    assert ctx.source == "subdomain"


async def test_resolves_from_session_pin(resolver, factory):
    tenant_id = factory.tenant("acme")

    ctx = await resolver.resolve(make_request(), session_tenant_id=tenant_id)

    assert ctx.id == tenant_id
    assert ctx.source == "session"


async def test_agreeing_sources_resolve(resolver, factory):
    tenant_id = factory.tenant("acme")
    request = make_request(headers={"X-Tenant-ID": tenant_id, "Host": "acme.bizhub.local"})

    ctx = await resolver.resolve(request, session_tenant_id=tenant_id)

    assert ctx.id == tenant_id


async def test_disagreeing_sources_are_refused(resolver, factory):
    acme = factory.tenant("acme")
    factory.tenant("globex")
    request = make_request(headers={"X-Tenant-ID": acme, "Host": "globex.bizhub.local"})

    with pytest.raises(TenantMismatch):
        await resolver.resolve(request)


async def test_header_disagreeing_with_session_pin_is_refused(resolver, factory):
    acme = factory.tenant("acme")
    globex = factory.tenant("globex")

    with pytest.raises(TenantMismatch):
        await resolver.resolve(make_request(headers={"X-Tenant-ID": globex}), session_tenant_id=acme)


async def test_no_tenant_source_fails_closed(resolver):
    with pytest.raises(TenantNotFound):
        await resolver.resolve(make_request(headers={"Host": "bizhub.local"}))


@pytest.mark.parametrize("header", [str(ObjectId()), "not-an-object-id"])
async def test_unknown_tenant_id_is_not_found(resolver, header):
    with pytest.raises(TenantNotFound):
        await resolver.resolve(make_request(headers={"X-Tenant-ID": header}))


@pytest.mark.parametrize("status", ["inactive", "suspended", "archived"])
async def test_non_active_tenant_is_refused(resolver, factory, status):
    tenant_id = factory.tenant("acme", status=status)

    with pytest.raises(TenantInactive) as exc:
        await resolver.resolve(make_request(headers={"X-Tenant-ID": tenant_id}))

    # Same client-facing answer as an unknown tenant
    assert exc.value.code == TenantNotFound().code == "TENANT_ACCESS_DENIED"
    assert exc.value.message == TenantNotFound().message


async def test_lookups_are_cached_until_invalidated(resolver, factory, db, store):
    tenant_id = factory.tenant("acme")
    request = make_request(headers={"X-Tenant-ID": tenant_id})
    await resolver.resolve(request)

    db["tenants"].docs[0]["status"] = "suspended"
    store.get_tenant = AsyncMock(side_effect=AssertionError("cache miss"))
    assert (await resolver.resolve(request)).is_active

    resolver.invalidate(tenant_id=tenant_id, subdomain="acme")
    store.get_tenant = AsyncMock(return_value=db["tenants"].docs[0])
    with pytest.raises(TenantInactive):
        await resolver.resolve(request)


async def test_cached_lookup_expires(resolver, factory, db, clock):
    tenant_id = factory.tenant("acme")
    request = make_request(headers={"Host": "acme.bizhub.local"})
    await resolver.resolve(request)

    db["tenants"].docs[0]["status"] = "inactive"
    assert (await resolver.resolve(request)).id == tenant_id

    clock.advance(601)
    with pytest.raises(TenantInactive):
        await resolver.resolve(request)


async def test_storage_failure_raises_service_error(resolver, store):
    store.get_tenant = AsyncMock(side_effect=ConnectionError("down"))

    with pytest.raises(AccessServiceError):
        await resolver.resolve(make_request(headers={"X-Tenant-ID": str(ObjectId())}))


# ── Payload tenant checks ────────────────────────────────────────
def json_request(method: str, payload, query_string: bytes = b""):
    return make_request(
        method=method,
        headers={"Content-Type": "application/json"},
        query_string=query_string,
        body=json.dumps(payload).encode(),
    )


async def test_write_body_naming_other_tenant_is_refused(resolver):
    with pytest.raises(TenantMismatch):
        await resolver.ensure_payload_matches(json_request("POST", {"tenant_id": "other"}), "mine")


async def test_camel_case_key_and_list_bodies_are_checked(resolver):
    with pytest.raises(TenantMismatch):
        await resolver.ensure_payload_matches(
            json_request("PUT", [{"name": "a"}, {"tenantId": "other"}]), "mine"
        )


async def test_query_string_tenant_is_checked_on_writes(resolver):
    request = make_request(method="DELETE", query_string=b"tenant_id=other")

    with pytest.raises(TenantMismatch):
        await resolver.ensure_payload_matches(request, "mine")


async def test_matching_or_absent_payload_tenant_passes(resolver):
    await resolver.ensure_payload_matches(json_request("POST", {"tenant_id": "mine"}), "mine")
    await resolver.ensure_payload_matches(json_request("PATCH", {"name": "x"}), "mine")


async def test_reads_are_not_checked(resolver):
    await resolver.ensure_payload_matches(make_request(query_string=b"tenant_id=other"), "mine")


async def test_body_without_content_type_is_still_checked(resolver):
    request = make_request(method="POST", body=json.dumps({"tenant_id": "other"}).encode())

    with pytest.raises(TenantMismatch):
        await resolver.ensure_payload_matches(request, "mine")


async def test_body_with_non_json_content_type_is_still_checked(resolver):
    request = make_request(
        method="PUT",
        headers={"Content-Type": "text/plain"},
        body=json.dumps({"tenantId": "other"}).encode(),
    )

    with pytest.raises(TenantMismatch):
        await resolver.ensure_payload_matches(request, "mine")


async def test_undecodable_or_form_bodies_carry_no_tenant_claim(resolver):
    await resolver.ensure_payload_matches(make_request(method="POST", body=b"{not json"), "mine")
    form = make_request(
        method="POST",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
        body=b"name=x",
    )
    await resolver.ensure_payload_matches(form, "mine")
