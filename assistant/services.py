"""
ASSISTANT App - Lassy, the LuggEase chat assistant

Thin wrapper around the Gemini `generateContent` REST endpoint plus a
keyword table that suggests a navigation action for the web client.
"""

import logging
from typing import Dict, List, Optional

import requests
from django.conf import settings

from core.models import UserRole

logger = logging.getLogger(__name__)


GREETING = "Hello! I'm Lassy, your LuggEase assistant. How can I help you today?"

FALLBACK_RESPONSE = (
    "I'm sorry, I'm having trouble connecting right now. Please try again "
    "or use the navigation menu to access what you need."
)

# First match wins
ACTION_COMMANDS = [
    ('book delivery', {'action': 'navigate', 'path': '/dashboard/new-delivery'}),
    ('new delivery', {'action': 'navigate', 'path': '/dashboard/new-delivery'}),
    ('track deliveries', {'action': 'navigate', 'path': '/dashboard/deliveries'}),
    ('my deliveries', {'action': 'navigate', 'path': '/dashboard/deliveries'}),
    ('available deliveries', {'action': 'navigate', 'path': '/dashboard/available'}),
    ('dashboard', {'action': 'navigate', 'path': '/dashboard'}),
    ('logout', {'action': 'logout'}),
]

ROLE_ACTIONS = {
    UserRole.CUSTOMER: (
        "Customer-specific actions you can help with:\n"
        '- "Book a delivery" - Guide through creating new delivery\n'
        '- "Track my deliveries" - Show status of current deliveries\n'
        '- "My delivery history" - View past deliveries\n'
        '- "Cancel delivery" - Help cancel pending deliveries'
    ),
    UserRole.DRIVER: (
        "Driver-specific actions you can help with:\n"
        '- "Show available deliveries" - List unassigned deliveries\n'
        '- "My current deliveries" - Show assigned deliveries\n'
        '- "Update my location" - Help with location sharing\n'
        '- "Complete delivery" - Guide through delivery completion'
    ),
    UserRole.ADMIN: (
        "Admin-specific actions you can help with:\n"
        '- "Dashboard overview" - Show platform statistics\n'
        '- "Assign deliveries" - Help assign unassigned deliveries\n'
        '- "Manage users" - User management tasks\n'
        '- "System notifications" - Platform-wide announcements'
    ),
}

DASHBOARD_SUGGESTIONS = {
    UserRole.CUSTOMER: [
        "Book a new delivery",
        "Track my current deliveries",
        "View delivery history",
        "Update my profile",
    ],
    UserRole.DRIVER: [
        "Show available deliveries",
        "My current assignments",
        "Update my location",
        "View earnings",
    ],
    UserRole.ADMIN: [
        "Show dashboard overview",
        "Assign pending deliveries",
        "View all users",
        "System statistics",
    ],
}

DELIVERY_SUGGESTIONS = [
    "What's my delivery status?",
    "Track delivery location",
    "Contact the driver",
    "Delivery instructions",
]

GENERAL_SUGGESTIONS = [
    "How can I help you?",
    "Navigate to dashboard",
    "Check notifications",
    "Account settings",
]


class LassyError(Exception):
    """The generative-AI backend could not produce an answer."""


class LassyService:

    @staticmethod
    def build_system_prompt(user, context: str = 'general') -> str:
        prompt = (
            "You are Lassy, a helpful AI assistant for LuggEase delivery platform.\n"
            f"User: {user.name} (Role: {user.role})\n"
            f"Context: {context}\n\n"
            "You can help with:\n"
            "- Booking new deliveries (customers)\n"
            "- Viewing delivery status and tracking\n"
            "- Managing delivery assignments (drivers)\n"
            "- Administrative tasks (admins)\n"
            "- General platform navigation\n\n"
            "Keep responses concise and helpful. If the user wants to perform "
            "actions, guide them through the process.\n"
            "For complex queries, break them down into simple steps."
        )
        role_actions = ROLE_ACTIONS.get(user.role)
        if role_actions:
            prompt += "\n\n" + role_actions
        return prompt

    @staticmethod
    def build_history(system_prompt: str, message: str) -> List[Dict]:
        return [
            {'role': 'user', 'parts': [{'text': system_prompt}]},
            {'role': 'model', 'parts': [{'text': GREETING}]},
            {'role': 'user', 'parts': [{'text': message}]},
        ]

    @staticmethod
    def suggested_action(message: str) -> Optional[Dict]:
        lowered = message.lower()
        for command, action in ACTION_COMMANDS:
            if command in lowered:
                return dict(action)
        return None

    @staticmethod
    def generate(contents: List[Dict]) -> str:
        """
        Call Gemini generateContent and return the first candidate's text.

        Raises:
            LassyError: missing key, transport error or unusable response
        """
        api_key = getattr(settings, 'GEMINI_API_KEY', '')
        if not api_key:
            raise LassyError("GEMINI_API_KEY is not configured")

        url = f"{settings.GEMINI_API_URL}/models/{settings.GEMINI_MODEL}:generateContent"

        try:
            response = requests.post(
                url,
                params={'key': api_key},
                json={'contents': contents},
                timeout=getattr(settings, 'GEMINI_TIMEOUT', 20),
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise LassyError(f"Gemini request failed: {e}") from e

        try:
            parts = data['candidates'][0]['content']['parts']
            return ''.join(part.get('text', '') for part in parts).strip()
        except (KeyError, IndexError, TypeError) as e:
            raise LassyError(f"Unexpected Gemini response: {data}") from e

    @classmethod
    def ask(cls, user, message: str, context: str = 'general') -> Dict:
        """
        Answer a chat message for `user`.

        Never raises: on upstream failure the reply is an apology with no
        suggested action.
        """
        try:
            answer = cls.generate(
                cls.build_history(cls.build_system_prompt(user, context), message)
            )
        except LassyError as e:
            logger.error(f"[LASSY] {e}")
            return {'response': FALLBACK_RESPONSE, 'suggested_action': None}

        return {
            'response': answer,
            'suggested_action': cls.suggested_action(message),
        }

    @staticmethod
    def suggestions(user, context: str) -> List[str]:
        if context == 'dashboard':
            return list(DASHBOARD_SUGGESTIONS.get(user.role, []))
        if context == 'delivery':
            return list(DELIVERY_SUGGESTIONS)
        return list(GENERAL_SUGGESTIONS)
