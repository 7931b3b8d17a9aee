from django.contrib import admin  # type: ignore

from .models import Review


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ('id', 'property', 'guest', 'rating', 'is_visible', 'created_at')
    list_filter = ('is_visible', 'rating')
    search_fields = ('property__title', 'guest__email', 'booking__booking_code')
    readonly_fields = ('guest', 'property', 'booking', 'created_at', 'updated_at')
