"""
客户API路由 - FastAPI表现层（API Gateway 资源 /customers 直接映射到这里）
"""
from fastapi import APIRouter, Depends, Response, status

from application.dtos.customers import CustomerJson, GetCustomerResponse, GetCustomersResponse, KPIJson
from application.ports.customers import CustomerUseCases
from api.dependencies import get_customer_service, parse_customer_id


router = APIRouter(
    prefix="/customers",
    tags=["客户管理"]
)

_JSON = "application/json"


@router.get("", summary="客户列表", response_model=GetCustomersResponse)
async def get_customers(service: CustomerUseCases = Depends(get_customer_service)):
    customers = await service.get_customers()
    return GetCustomersResponse(customers=[CustomerJson.from_domain(c) for c in customers])


# 必须注册在 /{customer_id} 之前
@router.get("/kpi", summary="客户统计指标", response_model=KPIJson)
async def get_kpi(service: CustomerUseCases = Depends(get_customer_service)):
    return KPIJson.from_domain(await service.get_kpi())


@router.get("/{customer_id}", summary="客户详情", response_model=GetCustomerResponse)
async def get_customer(
    customer_id: int = Depends(parse_customer_id),
    service: CustomerUseCases = Depends(get_customer_service),
):
    customer = await service.get_customer_by_id(customer_id)
    return GetCustomerResponse(customers=CustomerJson.from_domain(customer))


@router.post("", summary="创建客户", status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerJson,
    service: CustomerUseCases = Depends(get_customer_service),
):
    await service.create_customer(payload.to_domain(customer_id=None))
    return Response(status_code=status.HTTP_201_CREATED, media_type=_JSON)


@router.put("/{customer_id}", summary="更新客户")
async def update_customer(
    payload: CustomerJson,
    customer_id: int = Depends(parse_customer_id),
    service: CustomerUseCases = Depends(get_customer_service),
):
    await service.update_customer(payload.to_domain(customer_id=customer_id))
    return Response(status_code=status.HTTP_200_OK, media_type=_JSON)


@router.delete("/{customer_id}", summary="删除客户", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: int = Depends(parse_customer_id),
    service: CustomerUseCases = Depends(get_customer_service),
):
    await service.delete_customer(customer_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
