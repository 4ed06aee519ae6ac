"""Shared pytest fixtures for equipment custody tests."""

import pytest

from django.conf import settings
from django.contrib.auth.models import Group, Permission

# Plain static storage for tests (no collectstatic manifest)
settings.STORAGES["staticfiles"] = {
    "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
}


def _ensure_group_permissions(group_name):
    """Create a group with the permissions setup_groups would give it."""
    from equipment.management.commands.setup_groups import GROUP_PERMISSIONS

    group, _ = Group.objects.get_or_create(name=group_name)
    group.permissions.set(
        Permission.objects.filter(
            content_type__app_label="equipment",
            codename__in=GROUP_PERMISSIONS[group_name],
        )
    )
    return group


from equipment.factories import (  # noqa: E402
    DepartmentFactory,
    EquipmentFactory,
    EquipmentModelFactory,
    SiteFactory,
    UserFactory,
)

# --- User fixtures ---


@pytest.fixture
def password():
    return "testpass123!"


@pytest.fixture
def it_admin(db, password):
    group = _ensure_group_permissions("IT Admin")
    u = UserFactory(
        username="itadmin",
        email="itadmin@example.com",
        password=password,
        display_name="IT Admin",
    )
    u.groups.add(group)
    return u


@pytest.fixture
def manager(db, password):
    group = _ensure_group_permissions("Employee")
    u = UserFactory(
        username="manager",
        email="manager@example.com",
        password=password,
        display_name="Team Manager",
    )
    u.groups.add(group)
    return u


@pytest.fixture
def employee(db, password, manager):
    group = _ensure_group_permissions("Employee")
    u = UserFactory(
        username="employee",
        email="employee@example.com",
        password=password,
        display_name="Jane Employee",
        manager=manager,
    )
    u.groups.add(group)
    return u


@pytest.fixture
def auditor(db, password):
    group = _ensure_group_permissions("Auditor")
    u = UserFactory(
        username="auditor",
        email="auditor@example.com",
        password=password,
        display_name="Site Auditor",
    )
    u.groups.add(group)
    return u


@pytest.fixture
def outsider(db, password):
    return UserFactory(
        username="outsider",
        email="outsider@example.com",
        password=password,
        display_name="Someone Else",
    )


@pytest.fixture
def admin_user(db, password):
    return UserFactory(
        username="admin",
        email="admin@example.com",
        password=password,
        is_staff=True,
        is_superuser=True,
    )


@pytest.fixture
def admin_client(client, admin_user, password):
    client.login(username=admin_user.username, password=password)
    return client


@pytest.fixture
def it_client(client, it_admin, password):
    client.login(username=it_admin.username, password=password)
    return client


@pytest.fixture
def employee_client(client, employee, password):
    client.login(username=employee.username, password=password)
    return client


@pytest.fixture
def auditor_client(client, auditor, password):
    client.login(username=auditor.username, password=password)
    return client


# --- Core model fixtures ---


@pytest.fixture
def site(db):
    return SiteFactory(name="Paris HQ", country="France")


@pytest.fixture
def department(site):
    return DepartmentFactory(name="Engineering", site=site)


@pytest.fixture
def other_department(db):
    return DepartmentFactory(
        name="Sales", site=SiteFactory(name="Lyon Office")
    )


@pytest.fixture
def laptop_model(db):
    return EquipmentModelFactory(name="Latitude 5440", brand="Dell")


@pytest.fixture
def equipment(department, laptop_model):
    return EquipmentFactory(
        asset_tag="SN-0001",
        name="PC-ENG-01",
        equipment_model=laptop_model,
        department=department,
    )


@pytest.fixture
def assigned_equipment(department, laptop_model):
    return EquipmentFactory(
        asset_tag="SN-0003",
        name="PC-ENG-03",
        equipment_model=laptop_model,
        department=department,
        status="assigned",
    )


@pytest.fixture
def pending_assign(equipment, employee, manager, it_admin):
    """An assign transfer awaiting all three validations."""
    from equipment.services.transfers import create_transfer

    return create_transfer(
        "assign", equipment.pk, employee, manager, requested_by=it_admin
    )


@pytest.fixture
def pending_return(assigned_equipment, employee, manager, it_admin):
    """A return transfer awaiting all three validations."""
    from equipment.services.transfers import create_transfer

    return create_transfer(
        "return",
        assigned_equipment.pk,
        employee,
        manager,
        requested_by=it_admin,
        condition="good",
    )
