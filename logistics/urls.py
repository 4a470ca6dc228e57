"""
Logistics App URLs
"""

from django.urls import path

from .views import DeliveryViewSet, DriverViewSet, AdminViewSet

urlpatterns = [
    # Deliveries
    path('delivery/', DeliveryViewSet.as_view({'post': 'create'}), name='delivery-create'),
    path(
        'delivery/my-deliveries/',
        DeliveryViewSet.as_view({'get': 'my_deliveries'}),
        name='delivery-my-deliveries'
    ),
    path('delivery/<uuid:pk>/', DeliveryViewSet.as_view({'get': 'retrieve'}), name='delivery-detail'),
    path(
        'delivery/<uuid:pk>/status/',
        DeliveryViewSet.as_view({'patch': 'update_status'}),
        name='delivery-status'
    ),
    path('delivery/<uuid:pk>/cancel/', DeliveryViewSet.as_view({'post': 'cancel'}), name='delivery-cancel'),
    path('delivery/<uuid:pk>/route/', DeliveryViewSet.as_view({'get': 'route'}), name='delivery-route'),
    path('delivery/<uuid:pk>/rate/', DeliveryViewSet.as_view({'post': 'rate'}), name='delivery-rate'),

    # Drivers
    path(
        'driver/available-deliveries/',
        DriverViewSet.as_view({'get': 'available_deliveries'}),
        name='driver-available-deliveries'
    ),
    path('driver/accept/<uuid:pk>/', DriverViewSet.as_view({'post': 'accept'}), name='driver-accept'),
    path('driver/location/', DriverViewSet.as_view({'post': 'location'}), name='driver-location'),
    path('driver/complete/<uuid:pk>/', DriverViewSet.as_view({'post': 'complete'}), name='driver-complete'),

    # Admin
    path('admin/dashboard/', AdminViewSet.as_view({'get': 'dashboard'}), name='admin-dashboard'),
    path('admin/deliveries/', AdminViewSet.as_view({'get': 'deliveries'}), name='admin-deliveries'),
    path(
        'admin/assign-delivery/',
        AdminViewSet.as_view({'post': 'assign_delivery'}),
        name='admin-assign-delivery'
    ),
    path('admin/users/', AdminViewSet.as_view({'get': 'users'}), name='admin-users'),
]
