# Studio API Services Package
from studio_api.services.client_service import ClientService
from studio_api.services.trainer_service import TrainerService

__all__ = ['ClientService', 'TrainerService']
