"""Import every ORM model so ``Base.metadata`` is complete before create_all."""


def import_all_orm_models() -> None:
    import conflict_kernel.models  # noqa: F401
    import conflict_kernel.services.sequence_service  # noqa: F401
    import conflict_modules.adjustments.orm  # noqa: F401
    import conflict_modules.appeals.orm  # noqa: F401
