import logging

from django.conf import settings
from django.shortcuts import get_object_or_404
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import generics, permissions, status
from rest_framework.exceptions import ParseError
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from shop.models import Shop

from . import credentials as credential_service
from . import services
from .adapters import get_adapter
from .areas import ServiceableAreaIndex
from .exceptions import CourierError, CourierObjectNotFound
from .models import CourierCredential, CourierOrder, CourierProvider, ServiceableArea
from .selection import CourierSelector
from .serializers import (
    AreaQuerySerializer,
    AreaSyncSerializer,
    CourierCredentialSerializer,
    CourierOrderDetailSerializer,
    CourierOrderSerializer,
    CourierProviderSerializer,
    CredentialQuerySerializer,
    CredentialUpdateSerializer,
    DiscoveryQuerySerializer,
    DispatchSerializer,
    PathaoStoreSerializer,
    QuoteRequestSerializer,
    RedXAreaQuerySerializer,
    RedXPickupStoreSerializer,
    ServiceableAreaSerializer,
)
from .tokens import TokenManager
from .webhooks import WebhookIngestor

logger = logging.getLogger(__name__)


def _error(exc: CourierError):
    return Response({"detail": str(exc)}, status=exc.status_code)


def _flag(value):
    if value is None or value == "":
        return None
    return str(value).lower() in {"1", "true", "yes", "on"}


class CourierPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


class VendorMixin:
    """Resolves the shop owned by the requesting user."""

    def get_vendor(self, request):
        try:
            return request.user.owned_shop
        except Shop.DoesNotExist:
            return None


# -----------------------------
# Admin: providers
# -----------------------------
class ProviderListCreateView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        providers = services.list_providers(
            is_active=_flag(request.query_params.get("is_active")),
            auth_type=request.query_params.get("auth_type"),
        )
        return Response(CourierProviderSerializer(providers, many=True).data)

    def post(self, request):
        serializer = CourierProviderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        provider = services.create_provider(**serializer.validated_data)
        return Response(CourierProviderSerializer(provider).data, status=status.HTTP_201_CREATED)


class ProviderDetailView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request, pk):
        provider = get_object_or_404(CourierProvider, pk=pk)
        return Response(CourierProviderSerializer(provider).data)

    def patch(self, request, pk):
        provider = get_object_or_404(CourierProvider, pk=pk)
        serializer = CourierProviderSerializer(provider, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        provider = services.update_provider(provider, **serializer.validated_data)
        return Response(CourierProviderSerializer(provider).data)

    def delete(self, request, pk):
        provider = get_object_or_404(CourierProvider, pk=pk)
        try:
            services.delete_provider(provider)
        except CourierError as exc:
            return _error(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ProviderToggleView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        provider = services.toggle_provider(get_object_or_404(CourierProvider, pk=pk))
        return Response({"id": str(provider.id), "is_active": provider.is_active})


# -----------------------------
# Admin: credentials
# -----------------------------
class CredentialListCreateView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        query = CredentialQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        credentials = CourierCredential.objects.select_related("provider", "vendor")
        if query.validated_data.get("provider"):
            credentials = credentials.filter(provider_id=query.validated_data["provider"])
        if query.validated_data.get("environment"):
            credentials = credentials.filter(environment=query.validated_data["environment"])
        return Response(CourierCredentialSerializer(credentials, many=True).data)

    def post(self, request):
        serializer = CourierCredentialSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            credential = credential_service.create_credential(**serializer.validated_data)
        except CourierError as exc:
            return _error(exc)
        return Response(CourierCredentialSerializer(credential).data, status=status.HTTP_201_CREATED)


class CredentialDetailView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request, pk):
        credential = get_object_or_404(CourierCredential, pk=pk)
        return Response(CourierCredentialSerializer(credential).data)

    def patch(self, request, pk):
        credential = get_object_or_404(CourierCredential, pk=pk)
        serializer = CredentialUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        credential = credential_service.update_credential(credential, **serializer.validated_data)
        return Response(CourierCredentialSerializer(credential).data)

    def delete(self, request, pk):
        credential = get_object_or_404(CourierCredential, pk=pk)
        try:
            credential_service.delete_credential(credential)
        except CourierError as exc:
            return _error(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CredentialToggleView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        credential = get_object_or_404(CourierCredential, pk=pk)
        try:
            credential = credential_service.toggle_credential(credential)
        except CourierError as exc:
            return _error(exc)
        return Response({"id": str(credential.id), "is_active": credential.is_active})


class CredentialTestView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        credential = get_object_or_404(CourierCredential.objects.select_related("provider", "vendor"), pk=pk)
        return Response(credential_service.test_credential(credential))


class CredentialRefreshTokenView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        credential = get_object_or_404(CourierCredential.objects.select_related("provider"), pk=pk)
        try:
            TokenManager().force_refresh(credential)
        except CourierError as exc:
            return _error(exc)
        credential.refresh_from_db()
        return Response(
            {
                "message": "Token refreshed successfully",
                "token_expires_at": credential.token_expires_at,
            }
        )


# -----------------------------
# Admin: serviceable areas
# -----------------------------
class ServiceableAreaListView(generics.ListAPIView):
    permission_classes = [permissions.IsAdminUser]
    serializer_class = ServiceableAreaSerializer
    pagination_class = CourierPagination

    def get_queryset(self):
        query = AreaQuerySerializer(data=self.request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        provider = get_object_or_404(CourierProvider, pk=params["provider"]) if params.get("provider") else None
        return ServiceableAreaIndex().list_areas(
            provider=provider,
            location=params.get("location"),
            is_active=_flag(self.request.query_params.get("is_active")),
            search=params["search"],
        )


class ServiceableAreaSyncView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request):
        serializer = AreaSyncSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = ServiceableAreaIndex().sync(
            serializer.validated_data["provider"],
            serializer.validated_data["areas"],
        )
        return Response(
            {"created": result.created, "updated": result.updated, "total": result.total},
            status=status.HTTP_200_OK,
        )


class ServiceableAreaDeleteView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def delete(self, request, pk):
        ServiceableAreaIndex().delete(get_object_or_404(ServiceableArea, pk=pk))
        return Response(status=status.HTTP_204_NO_CONTENT)


# -----------------------------
# Admin: courier area and store discovery
# -----------------------------
class CourierDiscoveryMixin:
    """Resolves the adapter for ``provider_slug`` with the platform credential."""

    provider_slug = None

    def discovery_adapter(self, environment=None):
        provider = CourierProvider.objects.filter(slug=self.provider_slug).first()
        if provider is None:
            raise CourierObjectNotFound(f"Courier provider '{self.provider_slug}' is not configured")
        return get_adapter(provider, environment or settings.COURIER_ENVIRONMENT)


class PathaoCityListView(CourierDiscoveryMixin, APIView):
    permission_classes = [permissions.IsAdminUser]
    provider_slug = "pathao"

    def get(self, request):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            cities = self.discovery_adapter(query.validated_data.get("environment")).cities()
        except CourierError as exc:
            return _error(exc)
        return Response(cities)


class PathaoZoneListView(CourierDiscoveryMixin, APIView):
    permission_classes = [permissions.IsAdminUser]
    provider_slug = "pathao"

    def get(self, request, city_id):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            zones = self.discovery_adapter(query.validated_data.get("environment")).zones(city_id)
        except CourierError as exc:
            return _error(exc)
        return Response(zones)


class PathaoAreaListView(CourierDiscoveryMixin, APIView):
    permission_classes = [permissions.IsAdminUser]
    provider_slug = "pathao"

    def get(self, request, zone_id):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            areas = self.discovery_adapter(query.validated_data.get("environment")).areas(zone_id)
        except CourierError as exc:
            return _error(exc)
        return Response(areas)


class PathaoStoreListCreateView(CourierDiscoveryMixin, APIView):
    permission_classes = [permissions.IsAdminUser]
    provider_slug = "pathao"

    def get(self, request):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            stores = self.discovery_adapter(query.validated_data.get("environment")).stores()
        except CourierError as exc:
            return _error(exc)
        return Response(stores)

    def post(self, request):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        serializer = PathaoStoreSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            adapter = self.discovery_adapter(query.validated_data.get("environment"))
            result = adapter.create_store(serializer.validated_data)
        except CourierError as exc:
            return _error(exc)
        logger.info("Pathao store requested name=%s", serializer.validated_data["name"])
        return Response(result, status=status.HTTP_201_CREATED)


class RedXAreaListView(CourierDiscoveryMixin, APIView):
    permission_classes = [permissions.IsAdminUser]
    provider_slug = "redx"

    def get(self, request):
        query = RedXAreaQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        params = query.validated_data
        try:
            areas = self.discovery_adapter(params.get("environment")).areas(
                post_code=params.get("post_code"),
                district_name=params["district_name"],
            )
        except CourierError as exc:
            return _error(exc)
        return Response(areas)


class RedXPickupStoreListCreateView(CourierDiscoveryMixin, APIView):
    permission_classes = [permissions.IsAdminUser]
    provider_slug = "redx"

    def get(self, request):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        try:
            stores = self.discovery_adapter(query.validated_data.get("environment")).pickup_stores()
        except CourierError as exc:
            return _error(exc)
        return Response(stores)

    def post(self, request):
        query = DiscoveryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        serializer = RedXPickupStoreSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            adapter = self.discovery_adapter(query.validated_data.get("environment"))
            result = adapter.create_pickup_store(serializer.validated_data)
        except CourierError as exc:
            return _error(exc)
        logger.info("RedX pickup store created name=%s", serializer.validated_data["name"])
        return Response(result, status=status.HTTP_201_CREATED)


# -----------------------------
# Quote and dispatch
# -----------------------------
class QuoteView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = QuoteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        selector = CourierSelector()
        options = selector.collect_quotes(
            data["pickup_location_id"],
            data["delivery_location_id"],
            data["weight"],
            cod_amount=data["cod_amount"],
            delivery_type=data["delivery_type"],
        )
        try:
            best = selector.cheapest(options)
        except CourierError as exc:
            return _error(exc)

        def as_dict(option):
            return {
                "provider_id": str(option.provider.id),
                "provider": option.provider.slug,
                "courier_name": option.provider.display_name or option.provider.name,
                "delivery_charge": option.pricing.delivery_charge,
                "cod_charge": option.pricing.cod_charge,
                "total_charge": option.pricing.total_charge,
                "estimated_delivery_days": option.pricing.estimated_days,
            }

        return Response({"selected": as_dict(best), "options": [as_dict(option) for option in options]})


class DispatchView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request):
        serializer = DispatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        order_id = data.pop("order_id")
        vendor_id = data.pop("vendor_id")

        try:
            courier_order = services.CourierDispatcher().create_order_for_vendor(
                order_id, vendor_id, services.DispatchRequest(**data)
            )
        except CourierError as exc:
            return _error(exc)
        return Response(CourierOrderDetailSerializer(courier_order).data, status=status.HTTP_201_CREATED)


class OrderCourierOrdersView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request, order_id):
        courier_orders = services.CourierDispatcher().courier_orders_for_order(order_id)
        return Response(CourierOrderDetailSerializer(courier_orders, many=True).data)


class CourierOrderRefreshView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk):
        courier_order = get_object_or_404(CourierOrder.objects.select_related("provider", "vendor"), pk=pk)
        try:
            courier_order = services.CourierDispatcher().refresh_tracking(courier_order)
        except CourierError as exc:
            return _error(exc)
        return Response(CourierOrderSerializer(courier_order).data)


# -----------------------------
# Vendor
# -----------------------------
class VendorCourierOrderListView(VendorMixin, generics.ListAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = CourierOrderSerializer
    pagination_class = CourierPagination

    def get_queryset(self):
        vendor = self.get_vendor(self.request)
        if vendor is None:
            return CourierOrder.objects.none()
        return services.CourierDispatcher().vendor_courier_orders(vendor, status=self.request.query_params.get("status"))


class VendorReadyForPickupView(VendorMixin, APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, order_id):
        vendor = self.get_vendor(request)
        if vendor is None:
            return Response({"detail": "Only shop owners can manage courier orders"}, status=status.HTTP_403_FORBIDDEN)
        try:
            courier_order = services.CourierDispatcher().vendor_mark_ready_for_pickup(vendor, order_id)
        except CourierError as exc:
            return _error(exc)
        return Response(
            {
                "message": "Order marked as ready for pickup",
                "courier_order": CourierOrderSerializer(courier_order).data,
            }
        )


class VendorShippingLabelView(VendorMixin, APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, order_id):
        vendor = self.get_vendor(request)
        if vendor is None:
            return Response({"detail": "Only shop owners can manage courier orders"}, status=status.HTTP_403_FORBIDDEN)
        try:
            label = services.CourierDispatcher().shipping_label(vendor, order_id)
        except CourierError as exc:
            return _error(exc)
        return Response(label)


# -----------------------------
# Public
# -----------------------------
class PublicTrackingView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request, tracking_id):
        try:
            return Response(services.CourierDispatcher().public_tracking(tracking_id))
        except CourierError as exc:
            return _error(exc)


@method_decorator(csrf_exempt, name="dispatch")
class CourierWebhookView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request, provider):
        try:
            payload = request.data if isinstance(request.data, dict) else {}
        except ParseError:
            logger.warning("Courier webhook with unparseable body provider=%s", provider)
            payload = {}
        log = WebhookIngestor().ingest(provider, payload, request.headers)
        # Always acknowledge so the courier does not keep retrying.
        return Response({"message": "Webhook received", "result": log.event_type}, status=status.HTTP_200_OK)
