"""Factory Boy factories for equipment custody test data."""

import factory
from factory.django import DjangoModelFactory


class UserFactory(DjangoModelFactory):
    """Factory for CustomUser model."""

    class Meta:
        model = "accounts.CustomUser"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    display_name = factory.Faker("name")
    employee_id = factory.Sequence(lambda n: f"E{n:05d}")
    is_active = True

    @factory.post_generation
    def password(self, create, extracted, **kwargs):
        pwd = extracted or "testpass123!"
        self.set_password(pwd)
        if create:
            self.save(update_fields=["password"])


class SiteFactory(DjangoModelFactory):
    class Meta:
        model = "equipment.Site"

    name = factory.Sequence(lambda n: f"Site {n}")
    country = "France"


class DepartmentFactory(DjangoModelFactory):
    class Meta:
        model = "equipment.Department"

    name = factory.Sequence(lambda n: f"Department {n}")
    site = factory.SubFactory(SiteFactory)


class CategoryFactory(DjangoModelFactory):
    class Meta:
        model = "equipment.Category"

    name = factory.Sequence(lambda n: f"Category {n}")


class EquipmentModelFactory(DjangoModelFactory):
    class Meta:
        model = "equipment.EquipmentModel"

    name = factory.Sequence(lambda n: f"Latitude {5400 + n}")
    brand = "Dell"
    category = factory.SubFactory(CategoryFactory)


class EquipmentFactory(DjangoModelFactory):
    """Factory for Equipment model.

    Located in its department's site unless ``site`` is given.
    """

    class Meta:
        model = "equipment.Equipment"

    asset_tag = factory.Sequence(lambda n: f"SN{n:06d}")
    name = factory.Sequence(lambda n: f"PC-{n:04d}")
    equipment_model = factory.SubFactory(EquipmentModelFactory)
    status = "available"
    department = factory.SubFactory(DepartmentFactory)
    site = factory.LazyAttribute(
        lambda o: o.department.site if o.department else None
    )


class AssignmentFactory(DjangoModelFactory):
    """Factory for a bare Assignment row.

    Does not gate the equipment; use create_transfer for a real
    pending transfer.
    """

    class Meta:
        model = "equipment.Assignment"

    action = "assign"
    equipment = factory.SubFactory(EquipmentFactory)
    user = factory.SubFactory(UserFactory)
    manager = factory.SubFactory(UserFactory)
    status = "pending"


class AuditSessionFactory(DjangoModelFactory):
    class Meta:
        model = "equipment.AuditSession"

    department = factory.SubFactory(DepartmentFactory)
    started_by = factory.SubFactory(UserFactory)
    status = "in_progress"
