from django.contrib import admin
from .models import Trip


@admin.register(Trip)
class TripAdmin(admin.ModelAdmin):
    list_display = ['source', 'destination', 'date', 'time', 'price', 'total_seats', 'available_seats', 'version']
    list_filter = ['date', 'source', 'destination']
    search_fields = ['source', 'destination']
    readonly_fields = ['seats', 'available_seats', 'version', 'created_at', 'updated_at']
    ordering = ['date', 'time']
