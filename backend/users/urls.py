from django.urls import path

from .views import CurrentUserView, StaffLoginView

urlpatterns = [
    path("login/", StaffLoginView.as_view(), name="staff-login"),
    path("me/", CurrentUserView.as_view(), name="current-user"),
]
