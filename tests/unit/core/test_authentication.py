"""Unit tests for service-token authentication."""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest
from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.test import APIRequestFactory
from rest_framework_simplejwt.tokens import AccessToken

from modules.core.authentication import (
    IsServicePrincipal,
    ServicePrincipal,
    ServiceTokenAuthentication,
    issue_service_token,
)

pytestmark = pytest.mark.unit

factory = APIRequestFactory()


def _request(token):
    return factory.put("/", HTTP_AUTHORIZATION=f"Bearer {token}")


class TestServiceTokenAuthentication:
    def test_accepts_issued_token(self):
        principal, _ = ServiceTokenAuthentication().authenticate(
            _request(issue_service_token())
        )

        assert isinstance(principal, ServicePrincipal)
        assert principal.role == "ADMIN"
        assert principal.sub == settings.SERVICE_TOKEN_SUBJECT

    def test_no_header_means_no_credentials(self):
        assert ServiceTokenAuthentication().authenticate(factory.put("/")) is None

    def test_rejects_expired_token(self, settings):
        settings.SERVICE_TOKEN_LIFETIME = timedelta(seconds=-1)
        with pytest.raises(AuthenticationFailed):
            ServiceTokenAuthentication().authenticate(_request(issue_service_token()))

    def test_rejects_wrong_signature(self):
        token = jwt.encode(
            {"sub": "x", "role": "ADMIN", "token_type": "service", "exp": 9999999999},
            "some-other-secret",
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationFailed):
            ServiceTokenAuthentication().authenticate(_request(token))

    def test_rejects_buyer_access_token(self, django_user_model):
        user = django_user_model.objects.create_user(username="u", password="p")
        token = str(AccessToken.for_user(user))
        with pytest.raises(AuthenticationFailed):
            ServiceTokenAuthentication().authenticate(_request(token))

    def test_rejects_malformed_header(self):
        request = factory.put("/", HTTP_AUTHORIZATION="Token abc")
        with pytest.raises(AuthenticationFailed):
            ServiceTokenAuthentication().authenticate(request)


class TestIsServicePrincipal:
    def test_requires_admin_role(self):
        permission = IsServicePrincipal()
        admin = _request("x")
        admin.user = ServicePrincipal({"sub": "s", "role": "ADMIN"})
        reader = _request("x")
        reader.user = ServicePrincipal({"sub": "s", "role": "READER"})

        assert permission.has_permission(admin, None)
        assert not permission.has_permission(reader, None)
