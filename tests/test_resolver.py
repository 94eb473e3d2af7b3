"""Effective permission resolution: role permissions plus membership custom permissions."""

from unittest.mock import AsyncMock

import pytest

from bizhub.rbac import AccessServiceError, GlobalRole, Permission, PermissionResolver


@pytest.fixture
def resolver(store):
    return PermissionResolver(store)


async def test_union_of_role_and_custom_permissions_is_deduplicated(resolver, factory):
    tenant_id = factory.tenant()
    role_id = factory.role(tenant_id, permissions=["customers.view", "customers.edit"])
    user_id = factory.user()
    factory.membership(tenant_id, user_id, role_id, custom_permissions=["customers.edit", "sales.view"])

    effective = await resolver.resolve(user_id, tenant_id)

    assert effective.all == frozenset({
        Permission.CUSTOMERS_VIEW,
        Permission.CUSTOMERS_EDIT,
        Permission.SALES_VIEW,
    })
    assert len(effective.all) == 3
    assert effective.role_id == role_id
    assert not effective.bypass


async def test_no_membership_means_no_permissions(resolver, factory):
    tenant_id = factory.tenant()
    user_id = factory.user()

    effective = await resolver.resolve(user_id, tenant_id)

    assert effective.all == frozenset()
    assert not effective.has_membership


async def test_revoked_membership_grants_nothing(resolver, factory):
    tenant_id = factory.tenant()
    role_id = factory.role(tenant_id, permissions=["customers.view"])
    user_id = factory.user()
    factory.membership(tenant_id, user_id, role_id, status="revoked")

    effective = await resolver.resolve(user_id, tenant_id)

    assert effective.all == frozenset()


async def test_membership_cannot_use_role_from_another_tenant(resolver, factory):
    tenant_a = factory.tenant("alpha")
    tenant_b = factory.tenant("beta")
    foreign_role = factory.role(tenant_b, permissions=["customers.delete"])
    user_id = factory.user()
    factory.membership(tenant_a, user_id, foreign_role)

    effective = await resolver.resolve(user_id, tenant_a)

    assert Permission.CUSTOMERS_DELETE not in effective.all


async def test_membership_in_one_tenant_grants_nothing_in_another(resolver, factory):
    tenant_a = factory.tenant("alpha")
    tenant_b = factory.tenant("beta")
    role_id = factory.role(tenant_a, permissions=["customers.view"])
    user_id = factory.user()
    factory.membership(tenant_a, user_id, role_id)

    assert (await resolver.resolve(user_id, tenant_b)).all == frozenset()


async def test_inactive_role_contributes_only_custom_permissions(resolver, factory):
    tenant_id = factory.tenant()
    role_id = factory.role(tenant_id, permissions=["customers.view"], is_active=False)
    user_id = factory.user()
    factory.membership(tenant_id, user_id, role_id, custom_permissions=["sales.view"])

    effective = await resolver.resolve(user_id, tenant_id)

    assert effective.all == frozenset({Permission.SALES_VIEW})


async def test_top_global_role_gets_full_catalog_without_lookup(resolver, store, factory):
    tenant_id = factory.tenant()
    user_id = factory.user(global_role="super_admin")

    effective = await resolver.resolve(user_id, tenant_id, GlobalRole.SUPER_ADMIN)

    assert effective.bypass
    assert effective.all == frozenset(Permission)
    assert store.grant_lookups == 0


async def test_storage_failure_raises_service_error(resolver, store):
    store.get_membership_grants = AsyncMock(side_effect=ConnectionError("mongo down"))

    with pytest.raises(AccessServiceError) as exc:
        await resolver.resolve("u1", "t1")

    assert "mongo down" in exc.value.reason
    assert exc.value.status_code == 500
