"""Tests for the boto3 wrappers and error classification."""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ParamValidationError

from shared.aws_helpers import CloudFrontHelper, S3Helper, is_retryable
from shared.errors import CDNInvalidationError, S3Error


def client_error(code: str, status: int = 400, operation: str = "PutObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}}, operation)


class TestIsRetryable:
    @pytest.mark.parametrize("code", ["SlowDown", "Throttling", "RequestTimeout", "ServiceUnavailable"])
    def test_transient_codes(self, code):
        assert is_retryable(client_error(code))

    def test_server_errors(self):
        assert is_retryable(client_error("Whatever", status=503))

    @pytest.mark.parametrize("code", ["AccessDenied", "NoSuchBucket", "InvalidArgument", "TooManyInvalidationsInProgress"])
    def test_definitive_codes(self, code):
        assert not is_retryable(client_error(code))

    def test_connection_errors(self):
        assert is_retryable(EndpointConnectionError(endpoint_url="https://s3.amazonaws.com"))

    def test_param_errors(self):
        assert not is_retryable(ParamValidationError(report="bad"))


class TestS3Helper:
    def test_put_object_headers(self):
        client = MagicMock()
        client.put_object.return_value = {"ETag": '"abc"'}
        body = io.BytesIO(b"data")

        etag = S3Helper(client=client).put_object("b", "k", body, content_type="text/html", cache_control="no-cache")

        assert etag == "abc"
        client.put_object.assert_called_once_with(
            Bucket="b", Key="k", Body=body, ContentType="text/html", CacheControl="no-cache"
        )

    def test_put_object_error_mapping(self):
        client = MagicMock()
        client.put_object.side_effect = client_error("SlowDown", status=503)
        with pytest.raises(S3Error) as excinfo:
            S3Helper(client=client).put_object("b", "k", b"")
        assert excinfo.value.retryable

    def test_list_objects_paginates(self):
        client = MagicMock()
        client.get_paginator.return_value.paginate.return_value = [
            {"Contents": [{"Key": "a.html", "ETag": '"1"'}]},
            {},
            {"Contents": [{"Key": "b.html", "ETag": '"2"'}]},
        ]
        assert S3Helper(client=client).list_objects("b", "site/") == {"a.html": "1", "b.html": "2"}
        client.get_paginator.return_value.paginate.assert_called_once_with(Bucket="b", Prefix="site/")

    def test_delete_objects_batches(self):
        client = MagicMock()
        client.delete_objects.side_effect = lambda Bucket, Delete: {
            "Deleted": [{"Key": o["Key"]} for o in Delete["Objects"]]
        }
        keys = [f"k{i}" for i in range(1500)]

        deleted = S3Helper(client=client).delete_objects("b", keys)

        assert deleted == keys
        assert client.delete_objects.call_count == 2

    def test_delete_objects_partial_errors(self):
        client = MagicMock()
        client.delete_objects.return_value = {"Deleted": [], "Errors": [{"Key": "k", "Code": "AccessDenied"}]}
        with pytest.raises(S3Error, match="AccessDenied"):
            S3Helper(client=client).delete_objects("b", ["k"])


class TestCloudFrontHelper:
    def test_create_invalidation(self):
        client = MagicMock()
        client.create_invalidation.return_value = {"Invalidation": {"Id": "I1", "Status": "InProgress"}}

        result = CloudFrontHelper(client=client).create_invalidation("E1", ["/", "/about*"], "ref-1")

        assert result == {"Id": "I1", "Status": "InProgress"}
        client.create_invalidation.assert_called_once_with(
            DistributionId="E1",
            InvalidationBatch={"Paths": {"Quantity": 2, "Items": ["/", "/about*"]}, "CallerReference": "ref-1"},
        )

    def test_create_invalidation_rejected(self):
        client = MagicMock()
        client.create_invalidation.side_effect = client_error("InvalidArgument", operation="CreateInvalidation")
        with pytest.raises(CDNInvalidationError) as excinfo:
            CloudFrontHelper(client=client).create_invalidation("E1", ["bad"], "ref")
        assert not excinfo.value.retryable

    def test_status(self):
        client = MagicMock()
        client.get_invalidation.return_value = {"Invalidation": {"Id": "I1", "Status": "Completed"}}
        assert CloudFrontHelper(client=client).get_invalidation_status("E1", "I1") == "Completed"
        client.get_invalidation.assert_called_once_with(DistributionId="E1", Id="I1")
