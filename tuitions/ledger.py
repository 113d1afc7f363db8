"""
Shared plumbing for operations that read and write the ledger tables.

Every lifecycle object is built with an explicit handle: the database alias
it writes through and the clock it stamps transitions with.
"""

from django.db import DEFAULT_DB_ALIAS, transaction
from django.utils import timezone

from .exceptions import NotFound


class LedgerOperation:

    def __init__(self, using=DEFAULT_DB_ALIAS, clock=timezone.now):
        self.using = using
        self.clock = clock

    def atomic(self):
        return transaction.atomic(using=self.using)

    def objects(self, model):
        return model._default_manager.db_manager(self.using)

    def get(self, model, pk):
        """Fetch by primary key or raise NotFound."""
        try:
            return self.objects(model).get(pk=pk)
        except (model.DoesNotExist, ValueError, TypeError):
            raise NotFound(f'{model._meta.verbose_name.capitalize()} {pk} does not exist.')

    def lock(self, model, pk):
        """
        Fetch by primary key holding a row lock until the enclosing
        transaction ends. Must be called inside ``self.atomic()``.
        """
        try:
            return self.objects(model).select_for_update().get(pk=pk)
        except (model.DoesNotExist, ValueError, TypeError):
            raise NotFound(f'{model._meta.verbose_name.capitalize()} {pk} does not exist.')

    def swap_status(self, model, pk, expected, **changes):
        """
        Conditionally update one row: apply ``changes`` only if its status is
        still ``expected`` (a value or a list of values).

        Returns:
            bool: True if the row was updated
        """
        queryset = self.objects(model).filter(pk=pk)
        if isinstance(expected, (list, tuple)):
            queryset = queryset.filter(status__in=expected)
        else:
            queryset = queryset.filter(status=expected)
        return queryset.update(**changes) == 1
