# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Firebase bootstrap - one default app shared by Firestore and Cloud Messaging
"""
import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

import config

logger = logging.getLogger(__name__)

COURSES = 'courses'
ENROLLMENTS = 'enrollments'
USERS = 'users'
DEVICE_TOKENS = 'deviceTokens'
NOTIFICATIONS = 'notifications'
SMS_LOGS = 'smsLogs'


def init_firebase(credentials_path: Optional[str] = None, project_id: Optional[str] = None):
    """Initialise the default Firebase app once; returns it"""
    if firebase_admin._apps:  # guard against re-init
        return firebase_admin.get_app()

    credentials_path = credentials_path or config.FIREBASE_CREDENTIALS
    project_id = project_id or config.FIREBASE_PROJECT_ID
    options = {'projectId': project_id} if project_id else None

    if credentials_path:
        cred = credentials.Certificate(credentials_path)
        logger.info(f"Initialising Firebase with service account {credentials_path}")
    else:
        cred = credentials.ApplicationDefault()
        logger.info("Initialising Firebase with application default credentials")

    return firebase_admin.initialize_app(cred, options)


def get_firestore_client() -> firestore.Client:
    init_firebase()
    return firestore.client()
