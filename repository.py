from datetime import datetime
from typing import List, Optional, Tuple

from models import (
    PendingDelivery,
    Survey,
    SurveyResponse,
    SurveyStatus,
)


class SurveyRepository:
    """
    Store for surveys, responses and delivery bookkeeping on MongoDB.

    Responses reference their survey by ``surveyId`` only. Deleting a survey
    never removes its responses; callers must refuse the delete instead.
    """

    def __init__(self, database):
        self.surveys = database["surveys"]
        self.responses = database["responses"]
        self.deliveries = database["deliveries"]
        self.pending = database["pending_deliveries"]

    # Surveys

    async def get_survey(self, survey_id: str) -> Optional[Survey]:
        doc = await self.surveys.find_one({"id": survey_id}, {"_id": 0})
        return Survey(**doc) if doc else None

    async def survey_exists(self, survey_id: str) -> bool:
        return await self.surveys.count_documents({"id": survey_id}, limit=1) > 0

    async def list_surveys(
        self,
        status: Optional[SurveyStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Survey], int]:
        query = {"status": status.value} if status else {}
        cursor = self.surveys.find(query, {"_id": 0}).sort("createdAt", -1).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        total = await self.surveys.count_documents(query)
        return [Survey(**doc) for doc in docs], total

    async def list_surveys_with_delivery(self, delivery_type: str) -> List[Survey]:
        query = {
            "deliveryConfig.type": delivery_type,
            "status": {"$ne": SurveyStatus.archived.value},
        }
        docs = await self.surveys.find(query, {"_id": 0}).to_list(length=None)
        return [Survey(**doc) for doc in docs]

    async def save_survey(self, survey: Survey) -> None:
        await self.surveys.replace_one(
            {"id": survey.id},
            survey.model_dump(mode="json"),
            upsert=True,
        )

    async def delete_survey(self, survey_id: str) -> bool:
        result = await self.surveys.delete_one({"id": survey_id})
        await self.deliveries.delete_one({"surveyId": survey_id})
        await self.pending.delete_many({"surveyId": survey_id})
        return result.deleted_count > 0

    async def update_cached_statistics(self, survey_id: str, response_count: int, completion_rate: float) -> None:
        await self.surveys.update_one(
            {"id": survey_id},
            {"$set": {"responseCount": response_count, "completionRate": completion_rate}},
        )

    # Responses

    async def list_responses(self, survey_id: str) -> List[SurveyResponse]:
        docs = await self.responses.find({"surveyId": survey_id}, {"_id": 0}).sort("submittedAt", 1).to_list(length=None)
        return [SurveyResponse(**doc) for doc in docs]

    async def count_responses(self, survey_id: str) -> int:
        return await self.responses.count_documents({"surveyId": survey_id})

    async def insert_response(self, response: SurveyResponse) -> None:
        await self.responses.insert_one(response.model_dump(mode="json"))

    # Deliveries

    async def get_last_sent(self, survey_id: str) -> Optional[datetime]:
        doc = await self.deliveries.find_one({"surveyId": survey_id})
        return doc["lastSentAt"] if doc else None

    async def record_delivery(self, survey_id: str, sent_at: datetime) -> None:
        await self.deliveries.update_one(
            {"surveyId": survey_id},
            {"$set": {"lastSentAt": sent_at}},
            upsert=True,
        )

    async def add_pending_delivery(self, pending: PendingDelivery) -> None:
        await self.pending.insert_one({**pending.model_dump(), "eventType": pending.eventType.value})

    async def list_pending_deliveries(
        self,
        survey_id: Optional[str] = None,
        due_before: Optional[datetime] = None,
    ) -> List[PendingDelivery]:
        query = {}
        if survey_id is not None:
            query["surveyId"] = survey_id
        if due_before is not None:
            query["sendAt"] = {"$lte": due_before}
        docs = await self.pending.find(query, {"_id": 0}).sort("sendAt", 1).to_list(length=None)
        return [PendingDelivery(**doc) for doc in docs]

    async def remove_pending_delivery(self, pending_id: str) -> None:
        await self.pending.delete_one({"id": pending_id})
