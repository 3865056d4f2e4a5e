"""
URL configuration for bookings app.
"""
from django.urls import path
from .views import (
    BookingCreateView, UserBookingsView, AllBookingsView,
    BookingDetailView, BookingCancelView,
)

urlpatterns = [
    path('', BookingCreateView.as_view(), name='booking_create'),
    path('user/', UserBookingsView.as_view(), name='user_bookings'),
    path('all/', AllBookingsView.as_view(), name='all_bookings'),
    path('<int:pk>/', BookingDetailView.as_view(), name='booking_detail'),
    path('<int:pk>/cancel/', BookingCancelView.as_view(), name='booking_cancel'),
]
