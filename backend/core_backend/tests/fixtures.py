"""
Shared test fixtures for all backend tests.

This module provides reusable pytest fixtures for common test objects
like tenants, users, menu items, tables, orders and bills.
"""
import pytest
from decimal import Decimal

from tenant.models import Tenant
from users.models import User
from menu.models import MenuCategory, MenuItem, DiningTable
from orders.models import Order
from partners.models import District, Reseller


# ============================================================================
# TENANT FIXTURES
# ============================================================================

@pytest.fixture
def tenant_a(db):
    """Create test tenant A (Spice Garden)"""
    return Tenant.objects.create(
        name='Spice Garden',
        slug='spice-garden',
        is_active=True
    )


@pytest.fixture
def tenant_b(db):
    """Create test tenant B (Dosa Corner)"""
    return Tenant.objects.create(
        name='Dosa Corner',
        slug='dosa-corner',
        is_active=True
    )


@pytest.fixture
def inactive_tenant(db):
    """Create inactive test tenant"""
    return Tenant.objects.create(
        name='Closed Restaurant',
        slug='closed-restaurant',
        is_active=False
    )


# ============================================================================
# USER FIXTURES
# ============================================================================

@pytest.fixture
def owner_tenant_a(tenant_a):
    return User.objects.create_user(
        email='owner@spicegarden.in',
        password='password123',
        tenant=tenant_a,
        role=User.Role.OWNER,
    )


@pytest.fixture
def owner_tenant_b(tenant_b):
    return User.objects.create_user(
        email='owner@dosacorner.in',
        password='password123',
        tenant=tenant_b,
        role=User.Role.OWNER,
    )


@pytest.fixture
def cashier_tenant_a(tenant_a):
    return User.objects.create_user(
        email='cashier@spicegarden.in',
        password='password123',
        tenant=tenant_a,
        role=User.Role.CASHIER,
    )


@pytest.fixture
def kitchen_user_tenant_a(tenant_a):
    return User.objects.create_user(
        email='kitchen@spicegarden.in',
        password='password123',
        tenant=tenant_a,
        role=User.Role.KITCHEN,
    )


# ============================================================================
# MENU FIXTURES
# ============================================================================

@pytest.fixture
def category_tenant_a(tenant_a):
    return MenuCategory.all_objects.create(tenant=tenant_a, name='Mains')


@pytest.fixture
def item_a(tenant_a, category_tenant_a):
    """Paneer Tikka at 100.00"""
    return MenuItem.all_objects.create(
        tenant=tenant_a,
        category=category_tenant_a,
        name='Paneer Tikka',
        price=Decimal('100.00'),
    )


@pytest.fixture
def item_b(tenant_a, category_tenant_a):
    """Masala Chai at 50.00"""
    return MenuItem.all_objects.create(
        tenant=tenant_a,
        category=category_tenant_a,
        name='Masala Chai',
        price=Decimal('50.00'),
    )


@pytest.fixture
def unavailable_item(tenant_a, category_tenant_a):
    return MenuItem.all_objects.create(
        tenant=tenant_a,
        category=category_tenant_a,
        name='Seasonal Special',
        price=Decimal('80.00'),
        is_available=False,
    )


@pytest.fixture
def item_tenant_b(tenant_b):
    return MenuItem.all_objects.create(
        tenant=tenant_b,
        name='Plain Dosa',
        price=Decimal('60.00'),
    )


@pytest.fixture
def table_a(tenant_a):
    return DiningTable.all_objects.create(tenant=tenant_a, number='T1')


@pytest.fixture
def table_a2(tenant_a):
    return DiningTable.all_objects.create(tenant=tenant_a, number='T2')


@pytest.fixture
def table_b(tenant_b):
    return DiningTable.all_objects.create(tenant=tenant_b, number='T1')


# ============================================================================
# ORDER / BILL FIXTURES
# ============================================================================

@pytest.fixture
def order_items(item_a, item_b):
    """2 x 100.00 + 1 x 50.00 = 250.00"""
    return [
        {'menu_item_id': str(item_a.id), 'quantity': 2},
        {'menu_item_id': str(item_b.id), 'quantity': 1},
    ]


@pytest.fixture
def pending_order(tenant_a, table_a, order_items):
    from orders.services import OrderCreationService

    result = OrderCreationService.create_order(
        tenant=tenant_a,
        table=table_a,
        items=order_items,
        caller_key='test',
        idempotency_key='pending-order-fixture',
    )
    return result.order


@pytest.fixture
def served_order(pending_order):
    """Walk the kitchen states directly so no side-effect tasks fire."""
    Order.all_objects.filter(id=pending_order.id).update(status=Order.OrderStatus.SERVED)
    pending_order.refresh_from_db()
    return pending_order


@pytest.fixture
def open_bill(tenant_a, table_a, served_order):
    """Bill for the 250.00 order at 18% tax: total 295.00."""
    from billing.services import BillService

    return BillService.create_from_order(served_order.id).bill


# ============================================================================
# PARTNER FIXTURES
# ============================================================================

@pytest.fixture
def reseller(db):
    return Reseller.objects.create(name='North Zone Partners', commission_rate=Decimal('0.2000'))


@pytest.fixture
def district(reseller):
    return District.objects.create(name='Koramangala', reseller=reseller)


@pytest.fixture
def district_without_reseller(db):
    return District.objects.create(name='Indiranagar')
