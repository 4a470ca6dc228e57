"""
Shared fixtures for logistics tests.
"""

from core.models import User, UserRole, VehicleType
from logistics.models import Delivery, DeliveryItem

PASSWORD = 'luggage-pass-123'

# Paris: Gare du Nord -> Gare de Lyon
PICKUP = {'address': 'Gare du Nord, Paris', 'latitude': 48.8809, 'longitude': 2.3553}
DROP = {'address': 'Gare de Lyon, Paris', 'latitude': 48.8443, 'longitude': 2.3744}


def make_customer(email='customer@example.com', **kwargs):
    kwargs.setdefault('name', 'Carla Customer')
    return User.objects.create_user(email=email, password=PASSWORD, role=UserRole.CUSTOMER, **kwargs)


def make_driver(email='driver@example.com', **kwargs):
    kwargs.setdefault('name', 'Dan Driver')
    kwargs.setdefault('vehicle_type', VehicleType.VAN)
    kwargs.setdefault('vehicle_number', 'AB-123-CD')
    return User.objects.create_user(email=email, password=PASSWORD, role=UserRole.DRIVER, **kwargs)


def make_admin(email='admin@example.com', **kwargs):
    kwargs.setdefault('name', 'Ada Admin')
    return User.objects.create_user(email=email, password=PASSWORD, role=UserRole.ADMIN, **kwargs)


def make_delivery(customer, driver=None, distance=4.3, **kwargs):
    delivery = Delivery.objects.create(
        customer=customer,
        driver=driver,
        pickup_address=PICKUP['address'],
        pickup_latitude=PICKUP['latitude'],
        pickup_longitude=PICKUP['longitude'],
        drop_address=DROP['address'],
        drop_latitude=DROP['latitude'],
        drop_longitude=DROP['longitude'],
        distance=distance,
        **kwargs
    )
    DeliveryItem.objects.create(delivery=delivery, description='Suitcase', weight=18.5)
    return delivery
