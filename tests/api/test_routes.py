"""
REST API 테스트

Flask 테스트 클라이언트 + 임시 SQLite 원장
"""

import os
import sys
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

# 프로젝트 루트를 Python 경로에 추가
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from app import create_app
from app.services.clock import FixedClock


class TestRentalApi(unittest.TestCase):
    """대여 API 테스트 클래스"""

    def setUp(self):
        """테스트 설정"""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.app = create_app('testing', test_config={
            'LEDGER_BACKEND': 'sqlite',
            'DB_PATH': os.path.join(self.temp_dir.name, 'api.db'),
        })
        self.clock = FixedClock(datetime(2024, 8, 1, 10, 0))
        self.app.rental_service.clock = self.clock
        self.client = self.app.test_client()

    def tearDown(self):
        """테스트 정리"""
        self.app.ledger_store.close()
        self.temp_dir.cleanup()

    def open_rental(self, **payload):
        body = {'item_name': '여우 가면', 'category': 'OMEN', 'customer_name': '山田'}
        body.update(payload)
        return self.client.post('/api/rentals', json=body)

    def test_health(self):
        response = self.client.get('/api/health')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['ledger_backend'], 'sqlite')

    def test_pricing_plans(self):
        data = self.client.get('/api/pricing/plans').get_json()
        self.assertEqual([p['plan'] for p in data['plans']], ['1h', '3h', '6h', 'allday'])
        vinyl = next(c for c in data['categories'] if c['category'] == 'VINYL')
        self.assertFalse(vinyl['rentable'])

    def test_pricing_estimate(self):
        response = self.client.get('/api/pricing/estimate?category=OMEN&minutes=196')
        data = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['plan'], '6h')
        self.assertEqual(data['fee'], 300)

    def test_pricing_estimate_invalid(self):
        response = self.client.get('/api/pricing/estimate?category=OMEN&minutes=abc')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], 'VALIDATION_ERROR')

        response = self.client.get('/api/pricing/estimate?category=OMEN&minutes=-5')
        self.assertEqual(response.status_code, 400)

    def test_open_rental(self):
        response = self.open_rental()
        data = response.get_json()

        self.assertEqual(response.status_code, 201)
        self.assertTrue(data['success'])
        self.assertEqual(data['rental']['rental_no'], 1)
        self.assertEqual(data['rental']['deposit'], 500)
        self.assertTrue(data['rental']['is_open'])
        self.assertEqual(data['ticket']['rental_no'], '1')
        self.assertEqual(data['ticket']['start_time'], '2024-08-01 10:00:00')

        next_number = self.client.get('/api/rentals/next-number').get_json()
        self.assertEqual(next_number['rental_no'], 2)

    def test_open_rental_rejects_sale_only(self):
        response = self.open_rental(category='VINYL', item_name='풍선')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], 'VALIDATION_ERROR')

    def test_open_rental_rejects_bad_deposit(self):
        self.assertEqual(self.open_rental(deposit='500').status_code, 400)
        self.assertEqual(self.open_rental(deposit=-1).status_code, 400)

    def test_search_and_return(self):
        self.open_rental()
        self.open_rental(customer_name='佐藤')

        data = self.client.get('/api/rentals/search', query_string={'name': '佐'}).get_json()
        self.assertEqual([r['rental_no'] for r in data['rentals']], [2])

        data = self.client.get('/api/rentals/search?rental_no=1').get_json()
        self.assertEqual(data['count'], 1)

        self.clock.advance(minutes=70)
        response = self.client.post('/api/rentals/1/return', json={'returnable': 'OK'})
        data = response.get_json()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['used_minutes'], 70)
        self.assertEqual(data['plan'], '1h')
        self.assertEqual(data['fee'], 100)
        self.assertEqual(data['deposit'], 500)
        self.assertEqual(data['refund'], 400)

        data = self.client.get('/api/rentals/search?rental_no=1').get_json()
        self.assertEqual(data['count'], 0)

    def test_return_with_explicit_end_time(self):
        self.open_rental(start_time='2024-08-01T09:00:00')
        response = self.client.post('/api/rentals/1/return', json={
            'returnable': 'NG', 'end_time': '2024-08-01T16:00:00+09:00'
        })
        data = response.get_json()
        self.assertEqual(data['plan'], 'allday')
        self.assertEqual(data['fee'], 400)
        self.assertEqual(data['refund'], 0)

    def test_return_errors(self):
        self.open_rental()

        response = self.client.post('/api/rentals/99/return', json={'returnable': 'OK'})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['error'], 'NOT_FOUND')

        response = self.client.post('/api/rentals/1/return', json={'returnable': 'MAYBE'})
        self.assertEqual(response.status_code, 400)

        response = self.client.post('/api/rentals/1/return', json={'returnable': 'OK'})
        self.assertEqual(response.status_code, 200)

        response = self.client.post('/api/rentals/1/return', json={'returnable': 'OK'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()['error'], 'INVALID_STATE')

    def test_search_requires_query(self):
        response = self.client.get('/api/rentals/search')
        self.assertEqual(response.status_code, 400)

        response = self.client.get('/api/rentals/search?name=%20%20')
        self.assertEqual(response.status_code, 400)

    def test_record_sales(self):
        response = self.client.post('/api/sales', json={'items': [
            {'category': 'VINYL', 'product_name': '풍선', 'quantity': 3},
        ]})
        data = response.get_json()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(data['total'], 900)
        self.assertEqual(data['sales'][0]['staff'], 'staffA')

        response = self.client.post('/api/sales', json={})
        self.assertEqual(response.status_code, 400)

    def test_unknown_route(self):
        response = self.client.get('/api/nothing')
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.get_json()['success'])


if __name__ == '__main__':
    unittest.main(verbosity=2)
