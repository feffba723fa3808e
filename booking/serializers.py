import re

from rest_framework import serializers

from .models import Booking, Service, Staff, WaitlistEntry, WalkIn
from .services.recurring import INTERVAL_LABELS
from .services.slot_utils import DAY_NAMES

HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
PHONE_RE = re.compile(r"^\+?\d{7,15}$")


def _validate_hhmm(value, label):
    if not isinstance(value, str) or not HHMM_RE.match(value):
        raise serializers.ValidationError(f"{label} must be a HH:MM time.")
    return value


class ServiceSerializer(serializers.ModelSerializer):
    deposit_amount = serializers.SerializerMethodField()

    class Meta:
        model = Service
        fields = ["id", "name", "description", "duration_minutes", "price", "deposit_percent", "deposit_amount", "active"]

    def get_deposit_amount(self, obj):
        return str(obj.deposit_amount())


class StaffSerializer(serializers.ModelSerializer):
    class Meta:
        model = Staff
        fields = ["id", "name", "email", "role", "active", "weekly_hours"]

    def validate_weekly_hours(self, value):
        """
        Reject malformed weekly hours at the edge so the slot generator only
        ever sees well-formed days.
        """
        if not isinstance(value, dict):
            raise serializers.ValidationError("weekly_hours must be an object keyed by day name.")

        for day, config in value.items():
            if day not in DAY_NAMES:
                raise serializers.ValidationError(f"Unknown day: {day}.")
            if config is None:
                continue
            if not isinstance(config, dict):
                raise serializers.ValidationError(f"{day}: expected an object.")
            if not config.get("enabled"):
                continue

            start = _validate_hhmm(config.get("start"), f"{day}.start")
            end = _validate_hhmm(config.get("end"), f"{day}.end")
            if start >= end:
                raise serializers.ValidationError(f"{day}: start must be before end.")

            breaks = config.get("breaks") or ([config["break"]] if config.get("break") else [])
            for brk in breaks:
                if not isinstance(brk, dict):
                    raise serializers.ValidationError(f"{day}: each break must be an object.")
                b_start = _validate_hhmm(brk.get("start"), f"{day} break start")
                b_end = _validate_hhmm(brk.get("end"), f"{day} break end")
                if b_start >= b_end:
                    raise serializers.ValidationError(f"{day}: break start must be before break end.")
        return value


class BookingSerializer(serializers.ModelSerializer):
    time = serializers.TimeField(format="%H:%M")

    class Meta:
        model = Booking
        fields = [
            "id",
            "ref_code",
            "service",
            "service_name",
            "duration",
            "price",
            "deposit_amount",
            "staff",
            "staff_name",
            "date",
            "time",
            "slot_id",
            "status",
            "recurring_group_id",
            "recurring_interval",
            "client_name",
            "client_email",
            "client_phone",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class ShopScopedPrimaryKeyField(serializers.PrimaryKeyRelatedField):
    """PK field limited to rows of the shop passed in the serializer context."""

    def get_queryset(self):
        return super().get_queryset().filter(shop=self.context["shop"])


class BookingCreateSerializer(serializers.Serializer):
    service = ShopScopedPrimaryKeyField(queryset=Service.objects.filter(active=True))
    staff = ShopScopedPrimaryKeyField(queryset=Staff.objects.filter(active=True), required=False, allow_null=True)
    slot_id = serializers.CharField(max_length=120)
    client_name = serializers.CharField(max_length=200)
    client_email = serializers.EmailField()
    client_phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    recurring_interval = serializers.ChoiceField(choices=list(INTERVAL_LABELS), required=False, allow_null=True)

    def validate_client_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Name is required.")
        return value

    def validate_client_phone(self, value):
        value = (value or "").strip()
        if value and not PHONE_RE.match(value):
            raise serializers.ValidationError("Phone must be digits only, 7 to 15 digits.")
        return value


class RescheduleSerializer(serializers.Serializer):
    slot_id = serializers.CharField(max_length=120)


class CancelSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=["single", "future"], default="single")


class RecurringPreviewSerializer(serializers.Serializer):
    service = ShopScopedPrimaryKeyField(queryset=Service.objects.filter(active=True))
    staff = ShopScopedPrimaryKeyField(queryset=Staff.objects.all(), required=False, allow_null=True)
    date = serializers.DateField()
    time = serializers.CharField()
    interval = serializers.ChoiceField(choices=list(INTERVAL_LABELS))

    def validate_time(self, value):
        return _validate_hhmm(value, "time")


class WaitlistEntrySerializer(serializers.ModelSerializer):
    service = ShopScopedPrimaryKeyField(queryset=Service.objects.all(), required=False, allow_null=True)
    staff = ShopScopedPrimaryKeyField(queryset=Staff.objects.all(), required=False, allow_null=True)

    class Meta:
        model = WaitlistEntry
        fields = [
            "id",
            "ref_code",
            "client_name",
            "client_email",
            "client_phone",
            "service",
            "staff",
            "preferred_date",
            "preferred_days",
            "preferred_time_start",
            "preferred_time_end",
            "status",
            "created_at",
        ]
        read_only_fields = ["ref_code", "status", "created_at"]

    def validate_preferred_days(self, value):
        value = value or []
        unknown = [d for d in value if d not in DAY_NAMES]
        if unknown:
            raise serializers.ValidationError(f"Unknown days: {', '.join(map(str, unknown))}.")
        return value

    def validate(self, attrs):
        start = attrs.get("preferred_time_start") or ""
        end = attrs.get("preferred_time_end") or ""
        if bool(start) != bool(end):
            raise serializers.ValidationError("Give both ends of the preferred time range, or neither.")
        if start:
            _validate_hhmm(start, "preferred_time_start")
            _validate_hhmm(end, "preferred_time_end")
            if start > end:
                raise serializers.ValidationError("Preferred time range start must not be after its end.")
        return attrs


class WalkInSerializer(serializers.ModelSerializer):
    service = ShopScopedPrimaryKeyField(queryset=Service.objects.filter(active=True), required=False, allow_null=True)
    staff = ShopScopedPrimaryKeyField(queryset=Staff.objects.filter(active=True), required=False, allow_null=True)
    estimated_duration = serializers.IntegerField(min_value=1, max_value=480, required=False)

    class Meta:
        model = WalkIn
        fields = [
            "id",
            "client_name",
            "service",
            "service_name",
            "staff",
            "estimated_duration",
            "status",
            "position",
            "joined_at",
            "started_at",
            "completed_at",
        ]
        read_only_fields = ["service_name", "status", "position", "joined_at", "started_at", "completed_at"]

    def validate_client_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Name is required.")
        return value


class WalkInMoveSerializer(serializers.Serializer):
    direction = serializers.ChoiceField(choices=["up", "down"])
