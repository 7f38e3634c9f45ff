"""
Unit tests for request classification and the logging context.
"""
import logging

from flask import g

from storefront.middleware import RequestContextFilter, wants_json


def _record():
    return logging.LogRecord('storefront', logging.INFO, __file__, 1, 'hello', None, None)


class TestWantsJson:

    def test_json_only_view_without_accept_header(self, app):
        with app.test_request_context('/admin/tenants/7'):
            assert wants_json()

    def test_upload_view_without_accept_header(self, app):
        with app.test_request_context('/user/upload-pdf', method='POST'):
            assert wants_json()

    def test_page_view_wants_html(self, app):
        with app.test_request_context('/admin/dashboard', headers={'Accept': 'text/html'}):
            assert not wants_json()

    def test_explicit_accept_header(self, app):
        with app.test_request_context('/admin/dashboard', headers={'Accept': 'application/json'}):
            assert wants_json()


class TestRequestContextFilter:

    def test_owner_context_uses_plain_business_number(self, app):
        class Unreadable:
            @property
            def business_number(self):
                raise AssertionError('tenant row must not be read while logging')

        with app.test_request_context('/user/api/data'):
            g.role = 'user'
            g.tenant = Unreadable()
            g.business_number = 'BIS00042'
            record = _record()

            assert RequestContextFilter().filter(record)
            assert record.role == 'user'
            assert record.business_number == 'BIS00042'

    def test_anonymous_request(self, app):
        with app.test_request_context('/'):
            record = _record()
            RequestContextFilter().filter(record)

        assert record.role == 'anonymous'
        assert record.business_number == '-'

    def test_outside_request(self):
        record = _record()
        RequestContextFilter().filter(record)

        assert record.role == 'system'
        assert record.business_number == '-'
