# SPDX-License-Identifier: GPL-3.0-only
"""Peewee Database Models."""

import datetime

from peewee import CharField, DateTimeField, IntegerField, Model

from marketplace_otp.db import connect

database = connect()


class OTP(Model):
    """Pending one-time passcode, one row per destination."""

    destination = CharField(unique=True)
    issue_id = CharField(max_length=32)
    code_digest = CharField(max_length=128)
    channel = CharField(max_length=16, default="sms")
    attempt_count = IntegerField(default=0)
    max_attempts = IntegerField(default=3)
    date_issued = DateTimeField()
    date_expires = DateTimeField()
    date_created = DateTimeField(default=datetime.datetime.now)

    class Meta:
        # pylint: disable=C0115
        database = database
        table_name = "otp"


class OTPRateLimit(Model):
    """Issuance counter for a destination within the current window."""

    destination = CharField(unique=True)
    attempt_count = IntegerField(default=0)
    date_expires = DateTimeField()
    date_created = DateTimeField(default=datetime.datetime.now)

    class Meta:
        # pylint: disable=C0115
        database = database
        table_name = "otp_rate_limit"


class Entity(Model):
    """Identity resolved from a verified phone number."""

    eid = CharField(primary_key=True)
    phone_number_hash = CharField(unique=True)
    date_created = DateTimeField(default=datetime.datetime.now)
    date_last_verified = DateTimeField(default=datetime.datetime.now)

    class Meta:
        # pylint: disable=C0115
        database = database
        table_name = "entities"


MODELS = [OTP, OTPRateLimit, Entity]
