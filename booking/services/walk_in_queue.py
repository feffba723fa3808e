"""
walk_in_queue.py
----------------
Shop-side handling of the walk-in queue: join, reorder, start, complete,
no-show, plus the estimated waits shown on the public queue board.

Positions of waiting walk-ins are kept contiguous (1..n). Joining and any
change that removes someone from the waiting list run under a lock on the
shop row, so two joins never get the same position.
"""

import logging

from django.db import transaction
from django.utils import timezone

from shops.models import Shop

from ..conf import booking_setting
from ..exceptions import BookingError, InvalidTransition
from ..models import Staff, WalkIn
from .wait_times import calculate_all_wait_times, calculate_wait_minutes

logger = logging.getLogger(__name__)


class WalkInQueue:
    def __init__(self, shop):
        self.shop = shop

    # ---- reads ----
    def waiting(self):
        return list(
            WalkIn.objects.filter(shop=self.shop, status=WalkIn.STATUS_WAITING).order_by("position", "joined_at", "id")
        )

    def in_progress(self):
        return list(WalkIn.objects.filter(shop=self.shop, status=WalkIn.STATUS_IN_PROGRESS))

    def staff_count(self) -> int:
        return Staff.objects.filter(shop=self.shop, active=True).count()

    def _estimate_args(self, now):
        return {
            "in_progress": [w.to_snapshot() for w in self.in_progress()],
            "staff_count": self.staff_count(),
            "default_duration": booking_setting("WALK_IN_DEFAULT_DURATION"),
            "now": now or timezone.now(),
        }

    def wait_times(self, now=None) -> dict:
        """Estimated wait (minutes) per waiting walk-in id."""
        waiting = [w.to_snapshot() for w in self.waiting()]
        return calculate_all_wait_times(waiting, **self._estimate_args(now))

    def next_wait(self, now=None) -> int:
        """Estimated wait for someone joining the back of the queue now."""
        waiting = [w.to_snapshot() for w in self.waiting()]
        return calculate_wait_minutes(waiting, **self._estimate_args(now))

    # ---- writes ----
    def _lock(self):
        Shop.objects.select_for_update().get(pk=self.shop.pk)

    def _renumber(self):
        for position, walk_in in enumerate(self.waiting(), start=1):
            if walk_in.position != position:
                walk_in.position = position
                walk_in.save(update_fields=["position"])

    def join(self, client_name, service=None, staff=None, estimated_duration=None) -> WalkIn:
        if not estimated_duration:
            estimated_duration = service.duration_minutes if service else booking_setting("WALK_IN_DEFAULT_DURATION")

        with transaction.atomic():
            self._lock()
            waiting = self.waiting()
            position = max((w.position for w in waiting), default=0) + 1
            walk_in = WalkIn.objects.create(
                shop=self.shop,
                client_name=client_name,
                service=service,
                service_name=service.name if service else "",
                staff=staff,
                estimated_duration=estimated_duration,
                position=position,
            )

        logger.info("Walk-in %s joined shop %s at position %d", walk_in.id, self.shop.slug, position)
        return walk_in

    def _require(self, walk_in, *statuses):
        if walk_in.status not in statuses:
            raise InvalidTransition(f"This walk-in is {walk_in.status}.")

    def start(self, walk_in) -> WalkIn:
        self._require(walk_in, WalkIn.STATUS_WAITING)
        with transaction.atomic():
            self._lock()
            walk_in.status = WalkIn.STATUS_IN_PROGRESS
            walk_in.started_at = timezone.now()
            walk_in.position = 0
            walk_in.save(update_fields=["status", "started_at", "position"])
            self._renumber()
        logger.info("Walk-in %s started in shop %s", walk_in.id, self.shop.slug)
        return walk_in

    def complete(self, walk_in) -> WalkIn:
        self._require(walk_in, WalkIn.STATUS_IN_PROGRESS)
        walk_in.status = WalkIn.STATUS_COMPLETED
        walk_in.completed_at = timezone.now()
        walk_in.save(update_fields=["status", "completed_at"])
        return walk_in

    def no_show(self, walk_in) -> WalkIn:
        self._require(walk_in, WalkIn.STATUS_WAITING, WalkIn.STATUS_IN_PROGRESS)
        with transaction.atomic():
            self._lock()
            walk_in.status = WalkIn.STATUS_NO_SHOW
            walk_in.completed_at = timezone.now()
            walk_in.position = 0
            walk_in.save(update_fields=["status", "completed_at", "position"])
            self._renumber()
        return walk_in

    def move(self, walk_in, direction) -> WalkIn:
        """Swap a waiting walk-in with its neighbour ("up" = towards the front)."""
        if direction not in ("up", "down"):
            raise BookingError(f"Unknown direction: {direction!r}")
        self._require(walk_in, WalkIn.STATUS_WAITING)

        with transaction.atomic():
            self._lock()
            waiting = self.waiting()
            index = next(i for i, w in enumerate(waiting) if w.id == walk_in.id)
            other = index - 1 if direction == "up" else index + 1
            if 0 <= other < len(waiting):
                waiting[index], waiting[other] = waiting[other], waiting[index]
                for position, w in enumerate(waiting, start=1):
                    if w.position != position:
                        w.position = position
                        w.save(update_fields=["position"])
        walk_in.refresh_from_db()
        return walk_in
