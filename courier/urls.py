from django.urls import path

from .views import (
    CourierOrderRefreshView,
    CourierWebhookView,
    CredentialDetailView,
    CredentialListCreateView,
    CredentialRefreshTokenView,
    CredentialTestView,
    CredentialToggleView,
    DispatchView,
    OrderCourierOrdersView,
    PathaoAreaListView,
    PathaoCityListView,
    PathaoStoreListCreateView,
    PathaoZoneListView,
    ProviderDetailView,
    ProviderListCreateView,
    ProviderToggleView,
    PublicTrackingView,
    QuoteView,
    RedXAreaListView,
    RedXPickupStoreListCreateView,
    ServiceableAreaDeleteView,
    ServiceableAreaListView,
    ServiceableAreaSyncView,
    VendorCourierOrderListView,
    VendorReadyForPickupView,
    VendorShippingLabelView,
)


urlpatterns = [
    # Admin
    path("admin/providers/", ProviderListCreateView.as_view(), name="courier-provider-list"),
    path("admin/providers/<uuid:pk>/", ProviderDetailView.as_view(), name="courier-provider-detail"),
    path("admin/providers/<uuid:pk>/toggle/", ProviderToggleView.as_view(), name="courier-provider-toggle"),
    path("admin/credentials/", CredentialListCreateView.as_view(), name="courier-credential-list"),
    path("admin/credentials/<uuid:pk>/", CredentialDetailView.as_view(), name="courier-credential-detail"),
    path("admin/credentials/<uuid:pk>/toggle/", CredentialToggleView.as_view(), name="courier-credential-toggle"),
    path("admin/credentials/<uuid:pk>/test/", CredentialTestView.as_view(), name="courier-credential-test"),
    path(
        "admin/credentials/<uuid:pk>/refresh-token/",
        CredentialRefreshTokenView.as_view(),
        name="courier-credential-refresh-token",
    ),
    path("admin/serviceable-areas/", ServiceableAreaListView.as_view(), name="courier-area-list"),
    path("admin/serviceable-areas/sync/", ServiceableAreaSyncView.as_view(), name="courier-area-sync"),
    path("admin/serviceable-areas/<uuid:pk>/", ServiceableAreaDeleteView.as_view(), name="courier-area-delete"),
    path("admin/courier-orders/<uuid:pk>/refresh/", CourierOrderRefreshView.as_view(), name="courier-order-refresh"),
    # Admin: courier area and store discovery
    path("admin/pathao/cities/", PathaoCityListView.as_view(), name="courier-pathao-cities"),
    path("admin/pathao/cities/<int:city_id>/zones/", PathaoZoneListView.as_view(), name="courier-pathao-zones"),
    path("admin/pathao/zones/<int:zone_id>/areas/", PathaoAreaListView.as_view(), name="courier-pathao-areas"),
    path("admin/pathao/stores/", PathaoStoreListCreateView.as_view(), name="courier-pathao-stores"),
    path("admin/redx/areas/", RedXAreaListView.as_view(), name="courier-redx-areas"),
    path("admin/redx/stores/", RedXPickupStoreListCreateView.as_view(), name="courier-redx-stores"),
    # Quote and dispatch
    path("quote/", QuoteView.as_view(), name="courier-quote"),
    path("orders/", DispatchView.as_view(), name="courier-dispatch"),
    path("orders/<uuid:order_id>/", OrderCourierOrdersView.as_view(), name="courier-orders-for-order"),
    # Vendor
    path("vendor/orders/", VendorCourierOrderListView.as_view(), name="courier-vendor-orders"),
    path("vendor/orders/<uuid:order_id>/ready/", VendorReadyForPickupView.as_view(), name="courier-vendor-ready"),
    path("vendor/orders/<uuid:order_id>/label/", VendorShippingLabelView.as_view(), name="courier-vendor-label"),
    # Public
    path("track/<str:tracking_id>/", PublicTrackingView.as_view(), name="courier-public-tracking"),
    path("webhook/<slug:provider>/", CourierWebhookView.as_view(), name="courier-webhook"),
]
