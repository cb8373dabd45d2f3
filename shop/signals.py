"""Hooks for collaborators outside the shop core (notifications, audit).

Both signals are sent only after the surrounding transaction commits.
"""
from django.dispatch import Signal

# sender=Order, kwargs: order
order_created = Signal()

# sender=Order, kwargs: order, previous_status
order_status_changed = Signal()
