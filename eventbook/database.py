import os
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError
from dotenv import load_dotenv
from loguru import logger

# Load environment variables
load_dotenv()


class DynamoDBClient:
    def __init__(self, table_name: Optional[str] = None, region_name: Optional[str] = None):
        self.aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        self.aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        self.aws_region = region_name or os.getenv("AWS_REGION", "us-east-1")
        self.table_name = table_name or os.getenv("EVENTS_TABLE_NAME")

        # Initialize DynamoDB client
        self.dynamodb = boto3.client(
            'dynamodb',
            aws_access_key_id=self.aws_access_key_id,
            aws_secret_access_key=self.aws_secret_access_key,
            region_name=self.aws_region
        )

        # Initialize DynamoDB resource for easier operations
        self.dynamodb_resource = boto3.resource(
            'dynamodb',
            aws_access_key_id=self.aws_access_key_id,
            aws_secret_access_key=self.aws_secret_access_key,
            region_name=self.aws_region
        )

        if self.table_name:
            self.table = self.dynamodb_resource.Table(self.table_name)
        else:
            self.table = None

    def test_connection(self) -> Dict[str, Any]:
        """Test DynamoDB connection and return table info"""
        if not self.table_name:
            return {
                "status": "error",
                "error": "Table name not configured in environment variables"
            }

        try:
            response = self.dynamodb.describe_table(TableName=self.table_name)
            return {
                "status": "connected",
                "table_name": self.table_name,
                "table_status": response['Table']['TableStatus'],
                "item_count": response['Table']['ItemCount']
            }
        except ClientError as e:
            return {
                "status": "error",
                "error": str(e)
            }

    def put_item(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Put item into DynamoDB table"""
        try:
            response = self.table.put_item(Item=item)
            return {
                "status": "success",
                "response": response
            }
        except ClientError as e:
            return {
                "status": "error",
                "error": str(e)
            }

    def get_item(self, pk: str, sk: str, consistent: bool = False) -> Dict[str, Any]:
        """Get item from DynamoDB table"""
        try:
            response = self.table.get_item(
                Key={
                    'pk': pk,
                    'sk': sk
                },
                ConsistentRead=consistent
            )
            if 'Item' in response:
                return {
                    "status": "success",
                    "item": response['Item']
                }
            else:
                return {
                    "status": "not_found",
                    "item": None
                }
        except ClientError as e:
            return {
                "status": "error",
                "error": str(e)
            }

    def delete_item(self, pk: str, sk: str, condition_expression: str = None,
                    expression_values: Dict[str, Any] = None) -> Dict[str, Any]:
        """Delete item from DynamoDB table, optionally guarded by a condition"""
        delete_kwargs = {'Key': {'pk': pk, 'sk': sk}}
        if condition_expression:
            delete_kwargs['ConditionExpression'] = condition_expression
            if expression_values:
                delete_kwargs['ExpressionAttributeValues'] = expression_values

        try:
            response = self.table.delete_item(**delete_kwargs)
            return {
                "status": "success",
                "response": response
            }
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return {
                    "status": "condition_failed",
                    "error": str(e)
                }
            return {
                "status": "error",
                "error": str(e)
            }

    def count_items(self, pk: str, sk_prefix: str, consistent: bool = False) -> Dict[str, Any]:
        """Count items under a partition key whose sort key starts with sk_prefix"""
        query_kwargs = {
            'KeyConditionExpression': 'pk = :pk AND begins_with(sk, :sk)',
            'ExpressionAttributeValues': {
                ':pk': pk,
                ':sk': sk_prefix
            },
            'Select': 'COUNT',
            'ConsistentRead': consistent
        }
        try:
            count = 0
            while True:
                response = self.table.query(**query_kwargs)
                count += response['Count']
                if 'LastEvaluatedKey' not in response:
                    break
                query_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

            return {
                "status": "success",
                "count": count
            }
        except ClientError as e:
            return {
                "status": "error",
                "error": str(e)
            }

    def query_items(self, pk: str, sk_condition: str = None, consistent: bool = False) -> Dict[str, Any]:
        """Query items by partition key, optionally restricted to a sort key prefix"""
        try:
            if sk_condition:
                query_kwargs = {
                    'KeyConditionExpression': 'pk = :pk AND begins_with(sk, :sk)',
                    'ExpressionAttributeValues': {
                        ':pk': pk,
                        ':sk': sk_condition
                    }
                }
            else:
                query_kwargs = {
                    'KeyConditionExpression': 'pk = :pk',
                    'ExpressionAttributeValues': {
                        ':pk': pk
                    }
                }
            query_kwargs['ConsistentRead'] = consistent

            items = []
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response['Items'])
                if 'LastEvaluatedKey' not in response:
                    break
                query_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

            return {
                "status": "success",
                "items": items,
                "count": len(items)
            }
        except ClientError as e:
            return {
                "status": "error",
                "error": str(e)
            }

    def scan_items(self, filter_expression: str = None, expression_values: Dict[str, Any] = None, expression_names: Dict[str, str] = None) -> Dict[str, Any]:
        """Scan all items in the table with optional filter"""
        try:
            scan_kwargs = {}
            if filter_expression and expression_values:
                scan_kwargs['FilterExpression'] = filter_expression
                scan_kwargs['ExpressionAttributeValues'] = expression_values
                if expression_names:
                    scan_kwargs['ExpressionAttributeNames'] = expression_names

            items = []
            while True:
                response = self.table.scan(**scan_kwargs)
                items.extend(response['Items'])
                if 'LastEvaluatedKey' not in response:
                    break
                scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']

            return {
                "status": "success",
                "items": items,
                "count": len(items)
            }
        except ClientError as e:
            return {
                "status": "error",
                "error": str(e)
            }

    def transact_write(self, transact_items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Execute a transactional write operation.

        A cancelled transaction returns status "cancelled" together with the
        per-item cancellation reasons, in the order of transact_items.
        """
        try:
            response = self.dynamodb.transact_write_items(
                TransactItems=transact_items
            )
            return {
                "status": "success",
                "response": response
            }
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'TransactionCanceledException':
                return {
                    "status": "cancelled",
                    "error": str(e),
                    "cancellation_reasons": e.response.get('CancellationReasons', [])
                }
            logger.error(f"DynamoDB transaction failed: {e}")
            return {
                "status": "error",
                "error": str(e)
            }

    def update_item(self, pk: str, sk: str, update_expression: str,
                    expression_values: Dict[str, Any], condition_expression: str = None,
                    expression_names: Dict[str, str] = None) -> Dict[str, Any]:
        """Update item, optionally guarded by a condition, returning the new item"""
        update_kwargs = {
            'Key': {'pk': pk, 'sk': sk},
            'UpdateExpression': update_expression,
            'ExpressionAttributeValues': expression_values,
            'ReturnValues': 'ALL_NEW'
        }
        if condition_expression:
            update_kwargs['ConditionExpression'] = condition_expression
        if expression_names:
            update_kwargs['ExpressionAttributeNames'] = expression_names

        try:
            response = self.table.update_item(**update_kwargs)
            return {
                "status": "success",
                "item": response.get('Attributes', {})
            }
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return {
                    "status": "condition_failed",
                    "error": str(e)
                }
            return {
                "status": "error",
                "error": str(e)
            }


# Global database client instance
db_client = DynamoDBClient()
