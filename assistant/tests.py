"""
Lassy assistant tests (Gemini calls are mocked).
"""

from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from assistant.services import FALLBACK_RESPONSE, GREETING, LassyError, LassyService
from core.models import User, UserRole


def gemini_reply(text):
    response = MagicMock()
    response.json.return_value = {
        'candidates': [{'content': {'role': 'model', 'parts': [{'text': text}]}}]
    }
    response.raise_for_status.return_value = None
    return response


def make_user(role=UserRole.CUSTOMER, email='lassy-user@example.com'):
    return User.objects.create_user(email=email, password='luggage-pass-123', name='Lee', role=role)


class TestLassyService(TestCase):

    def setUp(self):
        self.customer = make_user()

    def test_system_prompt_is_role_specific(self):
        prompt = LassyService.build_system_prompt(self.customer, 'dashboard')
        self.assertIn('User: Lee (Role: customer)', prompt)
        self.assertIn('Context: dashboard', prompt)
        self.assertIn('"Book a delivery"', prompt)
        self.assertNotIn('"Assign deliveries"', prompt)

        admin = make_user(UserRole.ADMIN, 'lassy-admin@example.com')
        self.assertIn('"Assign deliveries"', LassyService.build_system_prompt(admin))

    def test_history(self):
        history = LassyService.build_history('SYSTEM', 'hi')
        self.assertEqual([turn['role'] for turn in history], ['user', 'model', 'user'])
        self.assertEqual(history[0]['parts'][0]['text'], 'SYSTEM')
        self.assertEqual(history[1]['parts'][0]['text'], GREETING)
        self.assertEqual(history[2]['parts'][0]['text'], 'hi')

    def test_suggested_action_first_match_wins(self):
        self.assertEqual(
            LassyService.suggested_action('I want to BOOK DELIVERY from my dashboard'),
            {'action': 'navigate', 'path': '/dashboard/new-delivery'}
        )
        self.assertEqual(
            LassyService.suggested_action('show available deliveries'),
            {'action': 'navigate', 'path': '/dashboard/available'}
        )
        self.assertEqual(LassyService.suggested_action('please logout'), {'action': 'logout'})
        self.assertIsNone(LassyService.suggested_action('what is the weather'))

    @patch('assistant.services.requests.post')
    def test_generate_calls_gemini(self, mock_post):
        mock_post.return_value = gemini_reply('Sure!')

        self.assertEqual(LassyService.generate([{'role': 'user', 'parts': [{'text': 'hi'}]}]), 'Sure!')

        url = mock_post.call_args[0][0]
        self.assertTrue(url.endswith(':generateContent'))
        self.assertEqual(mock_post.call_args[1]['params'], {'key': 'test-gemini-key'})
        self.assertIn('timeout', mock_post.call_args[1])

    @override_settings(GEMINI_API_KEY='')
    def test_generate_requires_key(self):
        with self.assertRaises(LassyError):
            LassyService.generate([])

    @patch('assistant.services.requests.post', side_effect=requests.exceptions.Timeout('slow'))
    def test_ask_falls_back_on_error(self, mock_post):
        reply = LassyService.ask(self.customer, 'book delivery please')
        self.assertEqual(reply, {'response': FALLBACK_RESPONSE, 'suggested_action': None})

    @patch('assistant.services.requests.post')
    def test_ask_falls_back_on_malformed_response(self, mock_post):
        response = MagicMock()
        response.json.return_value = {'promptFeedback': {'blockReason': 'SAFETY'}}
        mock_post.return_value = response

        self.assertEqual(LassyService.ask(self.customer, 'hi')['response'], FALLBACK_RESPONSE)

    def test_suggestions(self):
        driver = make_user(UserRole.DRIVER, 'lassy-driver@example.com')
        self.assertIn('Show available deliveries', LassyService.suggestions(driver, 'dashboard'))
        self.assertIn('Book a new delivery', LassyService.suggestions(self.customer, 'dashboard'))
        self.assertIn('Contact the driver', LassyService.suggestions(driver, 'delivery'))
        self.assertIn('Account settings', LassyService.suggestions(driver, 'settings'))


class TestLassyAPI(APITestCase):

    def setUp(self):
        self.user = make_user()
        self.client.force_authenticate(self.user)

    @patch('assistant.services.requests.post')
    def test_ask(self, mock_post):
        mock_post.return_value = gemini_reply('Head to New Delivery.')

        response = self.client.post(
            reverse('lassy'), {'message': 'How do I book delivery?', 'context': 'dashboard'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['response'], 'Head to New Delivery.')
        self.assertEqual(response.data['suggested_action']['path'], '/dashboard/new-delivery')
        self.assertIn('timestamp', response.data)

    def test_message_required(self):
        response = self.client.post(reverse('lassy'), {'context': 'dashboard'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Message is required')

    @patch('assistant.services.requests.post', side_effect=requests.exceptions.ConnectionError())
    def test_upstream_failure_is_still_200(self, mock_post):
        response = self.client.post(reverse('lassy'), {'message': 'hi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['response'], FALLBACK_RESPONSE)
        self.assertIsNone(response.data['suggested_action'])

    def test_suggestions(self):
        response = self.client.get(reverse('lassy-suggestions', args=['delivery']))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['suggestions']), 4)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.post(reverse('lassy'), {'message': 'hi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
