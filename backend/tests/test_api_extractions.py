import os
import sys
import unittest
from io import BytesIO

from openpyxl import load_workbook

BACKEND_DIR = os.path.join(os.path.dirname(__file__), '..')
WORKER_TESTS_DIR = os.path.join(BACKEND_DIR, '..', 'worker', 'tests')
sys.path.insert(0, BACKEND_DIR)
sys.path.insert(0, WORKER_TESTS_DIR)

from timecard_api import create_app, db
from extractor import TimecardExtractor
from fakes import FakeVisionClient, RecordingExporter, payload_text, png_bytes


CARD = payload_text(
    [
        {"dayInt": 1, "dayOfWeek": "水", "startTime1": "9:00", "endTime1": "18:00"},
        {"dayInt": 3, "dayOfWeek": "金", "startTime1": "9:00", "endTime1": "17:30"},
    ],
    name="山田 太郎",
)


class TestExtractionAPI(unittest.TestCase):
    def setUp(self):
        # One fake shared by every request so canned responses are consumed in order
        self.vision = FakeVisionClient([])
        self.responses = self.vision.responses
        self.exporters = []

        def extractor_factory():
            return TimecardExtractor(client=self.vision)

        def exporter_factory():
            exporter = RecordingExporter()
            self.exporters.append(exporter)
            return exporter

        self.app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'GUEST_DAILY_LIMIT': 2,
            'EXTRACTOR_FACTORY': extractor_factory,
            'SHEET_EXPORTER_FACTORY': exporter_factory,
        })
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.app_context.pop()

    def _upload(self, count, headers=None, **form):
        data = dict(form)
        data['files'] = [(BytesIO(png_bytes()), f'card{i}.png', 'image/png') for i in range(1, count + 1)]
        return self.client.post(
            '/api/extractions',
            data=data,
            content_type='multipart/form-data',
            headers=headers or {'X-Guest-Id': 'tester'},
        )

    def test_health(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.get_json()['ok'])

    def test_extracts_uploaded_cards_in_order(self):
        self.responses.extend([CARD, CARD])

        response = self._upload(2)

        self.assertEqual(response.status_code, 200)
        body = response.get_json()
        self.assertEqual(body['message'], "2枚の抽出が完了しました。")
        results = body['data']['results']
        self.assertEqual([r['fileName'] for r in results], ['card1.png', 'card2.png'])
        self.assertEqual(results[0]['detectedName'], "山田 太郎")
        self.assertEqual([e['date'] for e in results[0]['entries']], ['1水', '2木', '3金'])
        self.assertEqual(results[0]['entries'][0]['totalHours'], '9:00')
        self.assertEqual(results[0]['entries'][1]['totalHours'], '')

    def test_partial_failure_keeps_placeholder_result(self):
        self.responses.extend([CARD, "no json at all"])

        response = self._upload(2)

        self.assertEqual(response.status_code, 200)
        results = response.get_json()['data']['results']
        self.assertEqual(results[1]['detectedName'], 'エラー')
        self.assertEqual(results[1]['entries'], [])
        self.assertEqual(response.get_json()['data']['success_count'], 1)

    def test_all_failures_return_422(self):
        self.responses.extend(["garbage", payload_text([])])

        response = self._upload(2)

        self.assertEqual(response.status_code, 422)
        self.assertFalse(response.get_json()['success'])
        self.assertEqual(len(response.get_json()['data']['results']), 2)

    def test_missing_credentials_return_500_before_any_read(self):
        self.vision.configured = False
        self.responses.append(CARD)

        response = self._upload(1)

        self.assertEqual(response.status_code, 500)
        self.assertEqual(self.vision.calls, 0)

    def test_guest_quota_and_usage_endpoint(self):
        self.responses.extend([CARD, CARD, CARD])

        self.assertEqual(self._upload(1).status_code, 200)
        usage = self.client.get('/api/usage', headers={'X-Guest-Id': 'tester'}).get_json()['data']
        self.assertEqual(usage, {'count': 1, 'limit': 2, 'remaining': 1})

        self.assertEqual(self._upload(1).status_code, 200)
        response = self._upload(1)
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.get_json()['meta'], {'count': 2, 'limit': 2})

        # A different guest has its own counter
        self.assertEqual(self._upload(1, headers={'X-Guest-Id': 'someone-else'}).status_code, 200)

    def test_guest_multi_file_upload_stops_at_daily_limit(self):
        self.responses.extend([CARD, CARD, CARD, CARD])

        response = self._upload(4)

        self.assertEqual(response.status_code, 200)
        data = response.get_json()['data']
        self.assertEqual(len(data['results']), 2)
        self.assertEqual(data['success_count'], 2)
        self.assertEqual(data['quota_skipped_count'], 2)
        self.assertEqual(self.vision.calls, 2)
        self.assertEqual(self._upload(1).status_code, 429)

    def test_accounts_are_not_limited(self):
        self.responses.extend([CARD, CARD, CARD])
        headers = {'X-Account-Id': 'acct-1'}

        for _ in range(3):
            self.assertEqual(self._upload(1, headers=headers).status_code, 200)

        usage = self.client.get('/api/usage', headers=headers).get_json()['data']
        self.assertEqual(usage['count'], 3)
        self.assertIsNone(usage['limit'])

    def test_spreadsheet_id_triggers_export(self):
        self.responses.append(CARD)

        response = self._upload(1, spreadsheet_id='sheet-42')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['message'], "1枚のデータを抽出し、スプレッドシートへ転記しました！")
        self.assertEqual(len(self.exporters), 1)
        destination, entries, sheet_name = self.exporters[0].calls[0]
        self.assertEqual(destination, 'sheet-42')
        self.assertEqual(sheet_name, "山田 太郎")
        self.assertEqual(len(entries), 3)

    def test_rejects_missing_and_non_image_files(self):
        response = self.client.post('/api/extractions', data={}, content_type='multipart/form-data')
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            '/api/extractions',
            data={'files': [(BytesIO(b'hello'), 'notes.txt', 'text/plain')]},
            content_type='multipart/form-data',
        )
        self.assertEqual(response.status_code, 400)


class TestWorkbookExportAPI(unittest.TestCase):
    def setUp(self):
        self.app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://'})
        self.client = self.app.test_client()

    def test_downloads_edited_results_as_workbook(self):
        payload = {'results': [
            {
                'detectedName': '佐藤',
                'entries': [
                    {'dayInt': 1, 'date': '1月', 'dayOfWeek': '月', 'startTime1': '8:00', 'endTime1': '12:00',
                     'startTime2': '', 'endTime2': '', 'totalHours': '4:00'},
                ],
            },
            {'detectedName': '', 'entries': []},
        ]}

        response = self.client.post('/api/exports/workbook', json=payload)

        self.assertEqual(response.status_code, 200)
        self.assertIn('spreadsheetml', response.mimetype)
        wb = load_workbook(BytesIO(response.data))
        self.assertEqual(wb.sheetnames, ['佐藤', '検出なし'])
        self.assertEqual(wb['佐藤']['F2'].value, '4:00')
        self.assertEqual(wb['佐藤']['F3'].value, '4:00')

    def test_rejects_empty_payload(self):
        response = self.client.post('/api/exports/workbook', json={'results': []})
        self.assertEqual(response.status_code, 400)


if __name__ == '__main__':
    unittest.main()
