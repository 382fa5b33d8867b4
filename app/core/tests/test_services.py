"""
Tests for the service layer helpers.

Tests cover:
- ServiceResult construction, response format and mapping
- ServiceResult.from_exception error codes
- BaseService logger naming and transaction rollback
"""

import pytest
from django.contrib.auth import get_user_model

from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result.success is True
        assert bool(result) is True
        assert result.to_response() == {"success": True, "data": {"id": 1}}

    def test_failure_response_includes_code_and_field_errors(self):
        result = ServiceResult.failure(
            "Invalid input",
            error_code="VALIDATION_ERROR",
            errors={"month": ["Must be 1-12"]},
        )

        assert bool(result) is False
        assert result.to_response() == {
            "success": False,
            "error": "Invalid input",
            "error_code": "VALIDATION_ERROR",
            "errors": {"month": ["Must be 1-12"]},
        }

    def test_from_application_error_keeps_its_code(self):
        result = ServiceResult.from_exception(ValidationError("Month out of range"))

        assert result.error == "Month out of range"
        assert result.error_code == "VALIDATION_ERROR"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("id"))

        assert result.error_code == "KEYERROR"

    def test_map_transforms_success_only(self):
        assert ServiceResult.success(2).map(lambda x: x * 10).data == 20

        failure = ServiceResult.failure("nope")
        assert failure.map(lambda x: x * 10) is failure


class ExampleService(BaseService):
    def create_then_fail(self):
        with self.atomic():
            get_user_model().objects.create_user(username="rolled-back")
            raise ValidationError("Boom")


class TestBaseService:
    def test_logger_named_after_class(self):
        assert ExampleService.get_logger().name == f"{__name__}.ExampleService"

    @pytest.mark.django_db
    def test_atomic_rolls_back_on_error(self):
        with pytest.raises(ValidationError):
            ExampleService().create_then_fail()

        assert not get_user_model().objects.filter(username="rolled-back").exists()
