import unittest
from unittest.mock import MagicMock

from requests.exceptions import ConnectionError as RequestsConnectionError

from wallhub.core.baas_client import BaasClient, BaasError, eq, in_list, parse_content_range_total

from fakes import FakeResponse, make_settings


class FilterHelperTests(unittest.TestCase):
    def test_literals(self):
        self.assertEqual(eq(True), "eq.true")
        self.assertEqual(eq("abc"), "eq.abc")
        self.assertEqual(in_list([1, None, 2]), "in.(1,2)")
        self.assertEqual(in_list([]), "in.(0)")

    def test_content_range_total(self):
        self.assertEqual(parse_content_range_total("0-19/57"), 57)
        self.assertEqual(parse_content_range_total("*/0"), 0)
        self.assertIsNone(parse_content_range_total("0-19/*"))
        self.assertIsNone(parse_content_range_total(None))


class BaasClientTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = BaasClient(make_settings(), session=self.session)

    def test_select_with_count_reads_content_range(self):
        self.session.request.return_value = FakeResponse(
            200, [{"id": 1}, {"id": 2}], headers={"Content-Range": "0-1/57"}
        )
        rows, total = self.client.select("wallpapers", [("is_active", eq(True))], count=True)
        self.assertEqual(rows, [{"id": 1}, {"id": 2}])
        self.assertEqual(total, 57)
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "https://backend.test/rest/v1/wallpapers"))
        self.assertEqual(kwargs["params"], [("is_active", "eq.true")])
        self.assertEqual(kwargs["headers"]["Prefer"], "count=exact")
        self.assertEqual(kwargs["headers"]["apikey"], "service-key")

    def test_error_status_raises_baas_error(self):
        self.session.request.return_value = FakeResponse(409, body=b'duplicate key value violates unique constraint')
        with self.assertRaises(BaasError) as caught:
            self.client.insert("favorites", {"user_id": "u1", "wallpaper_id": 3})
        self.assertEqual(caught.exception.status, 409)
        self.assertTrue(caught.exception.is_conflict)
        self.assertEqual(caught.exception.operation, "insert favorites")

    def test_transport_error_has_status_zero(self):
        self.session.request.side_effect = RequestsConnectionError("unreachable")
        with self.assertRaises(BaasError) as caught:
            self.client.rpc("get_collections_with_stats")
        self.assertEqual(caught.exception.status, 0)

    def test_get_user_returns_none_when_token_rejected(self):
        self.session.request.return_value = FakeResponse(401, {"message": "invalid JWT"})
        self.assertIsNone(self.client.get_user("bad-token"))
        self.assertIsNone(self.client.get_user(""))

    def test_get_user_uses_anon_apikey(self):
        self.session.request.return_value = FakeResponse(200, {"id": "u1", "email": "a@example.com"})
        user = self.client.get_user("user-token")
        self.assertEqual(user["id"], "u1")
        headers = self.session.request.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer user-token")
        self.assertEqual(headers["apikey"], "anon-key")

    def test_sign_storage_url_makes_relative_path_absolute(self):
        self.session.request.return_value = FakeResponse(200, {"signedURL": "/object/sign/wallpapers/a.jpg?token=t"})
        url = self.client.sign_storage_url("wallpapers", "a.jpg", 300)
        self.assertEqual(url, "https://backend.test/storage/v1/object/sign/wallpapers/a.jpg?token=t")
        self.assertEqual(self.session.request.call_args.kwargs["json"], {"expiresIn": 300})

    def test_count_replaces_paging_params(self):
        self.session.request.return_value = FakeResponse(200, [{"id": 1}], headers={"Content-Range": "0-0/12"})
        total = self.client.count("downloads", [("user_id", eq("u1")), ("limit", "50")])
        self.assertEqual(total, 12)
        params = self.session.request.call_args.kwargs["params"]
        self.assertIn(("user_id", "eq.u1"), params)
        self.assertIn(("limit", "1"), params)
        self.assertNotIn(("limit", "50"), params)

    def test_probe_reports_zero_on_transport_error(self):
        self.session.get.side_effect = RequestsConnectionError("down")
        status, elapsed_ms = self.client.probe("/storage/v1/bucket")
        self.assertEqual(status, 0)
        self.assertGreaterEqual(elapsed_ms, 0)


if __name__ == "__main__":
    unittest.main()
