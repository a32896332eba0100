"""URL routing for the JSON API and the Django admin site.


/api/ exposes the wallet, submission and withdrawal operations; /admin/ is the
stock Django admin, used to manage ads and inspect (read-only) ledger rows.
"""

from django.contrib import admin
from django.urls import path, include


urlpatterns = [
	path("admin/", admin.site.urls),
	path("api/", include("api.urls")),
]
