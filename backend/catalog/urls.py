from django.urls import path
from .views import (
    item_list_create, item_active, item_available, item_missing, item_detail,
    item_category_list,
)

urlpatterns = [
    path('items/', item_list_create, name='item-list'),
    path('items/active/', item_active, name='item-active'),
    path('items/available/', item_available, name='item-available'),
    path('items/missing/', item_missing, name='item-missing'),
    path('items/<int:pk>/', item_detail, name='item-detail'),
    path('item-categories/', item_category_list, name='item-category-list'),
]
