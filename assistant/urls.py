"""
Assistant App URLs
"""

from django.urls import path

from .views import LassyView, SuggestionsView

urlpatterns = [
    path('lassy/', LassyView.as_view(), name='lassy'),
    path('suggestions/<str:context>/', SuggestionsView.as_view(), name='lassy-suggestions'),
]
