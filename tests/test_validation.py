"""
tests/test_validation.py — Identifier Format Checks
====================================================
"""

from __future__ import annotations

import pytest

from questline.engine.validation import validate_organization_id, validate_user_id
from questline.exceptions import ValidationError

USER_ID = "11111111-1111-4111-8111-111111111111"


class TestValidateUserId:
    @pytest.mark.parametrize("user_id", [USER_ID, USER_ID.upper()])
    def test_accepts_uuid(self, user_id):
        assert validate_user_id(user_id) == user_id

    @pytest.mark.parametrize(
        "user_id",
        [
            "alice",
            USER_ID + "\n",
            "\n" + USER_ID,
            USER_ID + " ",
            USER_ID[:-1],
            "11111111-1111-6111-8111-111111111111",  # version 6
            None,
            12345,
        ],
    )
    def test_rejects_malformed(self, user_id):
        with pytest.raises(ValidationError) as exc_info:
            validate_user_id(user_id)
        assert exc_info.value.field == "user_id"


class TestValidateOrganizationId:
    @pytest.mark.parametrize("org", ["abc", "acme-referrals", "acme_sales", "x" * 50])
    def test_accepts(self, org):
        assert validate_organization_id(org) == org

    @pytest.mark.parametrize("org", ["ab", "x" * 51, "acme\n", "acme corp", "acme!", ""])
    def test_rejects(self, org):
        with pytest.raises(ValidationError) as exc_info:
            validate_organization_id(org)
        assert exc_info.value.field == "organization_id"
