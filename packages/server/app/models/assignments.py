"""Service junction tables for incidents and maintenances."""

import uuid

from sqlmodel import Field, SQLModel


class ServiceIncident(SQLModel, table=True):
    __tablename__ = "services_incidents"

    service_id: uuid.UUID = Field(foreign_key="services.id", primary_key=True)
    incident_id: uuid.UUID = Field(foreign_key="incidents.id", primary_key=True)


class ServiceMaintenance(SQLModel, table=True):
    __tablename__ = "services_scheduled_maintenances"

    service_id: uuid.UUID = Field(foreign_key="services.id", primary_key=True)
    maintenance_id: uuid.UUID = Field(
        foreign_key="scheduled_maintenances.id", primary_key=True
    )
