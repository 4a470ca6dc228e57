"""
Assistant App Views - Lassy chat API
"""

from django.utils import timezone
from rest_framework import permissions, serializers, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .services import LassyService


class LassyMessageSerializer(serializers.Serializer):
    message = serializers.CharField(trim_whitespace=True)
    context = serializers.CharField(required=False, default='general')


class LassyView(APIView):
    """
    POST a chat message to Lassy.

    Request: {"message": "...", "context": "dashboard"}
    Response: {"response", "suggested_action", "timestamp"}
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = LassyMessageSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'message': 'Message is required'}, status=status.HTTP_400_BAD_REQUEST)

        reply = LassyService.ask(
            request.user,
            serializer.validated_data['message'],
            serializer.validated_data['context'],
        )
        reply['timestamp'] = timezone.now()
        return Response(reply)


class SuggestionsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, context):
        return Response({'suggestions': LassyService.suggestions(request.user, context)})
