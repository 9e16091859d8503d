from flask import Flask, request, Response, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
import json
import logging
import sys
from typing import Optional

from scatterbrain.ai_clients import AnthropicClient, OpenAIClient, PerplexityClient
from scatterbrain.config import Settings, get_settings
from scatterbrain.database import create_supabase_client
from scatterbrain.error_handler import AppError, ErrorHandler, UpgradeRequiredError
from scatterbrain.models import EventType, SynthesizeRequest
from scatterbrain.rate_limiter import RateLimiter
from scatterbrain.security import (
    sanitize_error_message,
    sanitize_input,
    validate_file_content,
    validate_file_upload,
)

from .services.audio import AudioService
from .services.billing import BillingService
from .services.content import ContentService
from .services.research import ResearchService
from .services.storage import StorageService
from .services.synthesis import SynthesisService
from .services.trending import TrendingService
from .services.usage import UsageService

settings = get_settings()

# Configure detailed logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
    force=True  # Ensure our config takes precedence
)

logger = logging.getLogger(__name__)


class Services:
    def __init__(self, storage, usage, synthesis, research, audio, billing, rate_limiter, trending=None, content=None):
        self.storage = storage
        self.usage = usage
        self.synthesis = synthesis
        self.research = research
        self.audio = audio
        self.billing = billing
        self.rate_limiter = rate_limiter
        self.trending = trending
        self.content = content


def build_services(settings: Settings) -> Services:
    logger.info("Initializing services...")
    supabase = create_supabase_client(settings, service_role=True)
    openai_client = OpenAIClient(settings=settings)

    storage = StorageService(supabase)
    research = ResearchService(AnthropicClient(settings=settings), PerplexityClient(settings=settings))
    services = Services(
        storage=storage,
        usage=UsageService(storage),
        synthesis=SynthesisService(openai_client),
        research=research,
        audio=AudioService(openai_client),
        billing=BillingService(supabase),
        rate_limiter=RateLimiter(settings.rate_limit_max_attempts, settings.rate_limit_window_seconds),
        trending=TrendingService(storage, research),
        content=ContentService(openai_client, storage)
    )
    logger.info("All services initialized successfully")
    return services


def _bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip() or None
    return None


def _error_response(message: str, status: int):
    return jsonify({'success': False, 'error': message}), status


def create_app(services: Optional[Services] = None) -> Flask:
    app = Flask(__name__)
    services = services or build_services(settings)

    def current_user_id() -> Optional[str]:
        token = _bearer_token()
        if not token:
            return None
        try:
            user = services.storage.supabase.auth.get_user(token)
            return user.user.id if user and user.user else None
        except Exception as e:
            logger.warning(f"Could not resolve user from token: {str(e)}")
            return None

    def require_user_id() -> str:
        user_id = current_user_id()
        if not user_id:
            raise AppError("Missing or invalid auth token", status_code=401,
                           user_message=ErrorHandler.CATEGORY_MESSAGES['auth'])
        return user_id

    def require_organization_id(user_id: str) -> str:
        profile = services.storage.get_profile(user_id)
        if not profile or not profile.get('organization_id'):
            raise AppError(f"Profile not found for user {user_id}", status_code=404,
                           user_message="User profile not found. Please complete your profile setup.")
        return profile['organization_id']

    @app.errorhandler(UpgradeRequiredError)
    def handle_upgrade_required(e: UpgradeRequiredError):
        return jsonify({'success': False, **e.to_dict()}), e.status_code

    @app.errorhandler(AppError)
    def handle_app_error(e: AppError):
        logger.error(f"Request failed: {e.message}")
        return _error_response(sanitize_error_message(e.user_message), e.status_code)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return e
        logger.error(f"Unhandled error: {str(e)}", exc_info=True)
        return _error_response(ErrorHandler.CATEGORY_MESSAGES['unknown'], 500)

    @app.route('/status', methods=['GET'])
    def status():
        """Basic health check"""
        return jsonify({'status': 'healthy'})

    @app.route('/synthesize', methods=['POST'])
    def synthesize():
        body = request.get_json(silent=True) or {}
        user_id = current_user_id()

        if not services.rate_limiter.is_allowed(user_id or request.remote_addr or 'anonymous'):
            return _error_response("Too many requests. Please wait a minute and try again.", 429)

        text = sanitize_input(body.get('input') or '')
        if not text.strip():
            return _error_response('Input text is required', 400)

        try:
            synth_request = SynthesizeRequest.model_validate({**body, 'input': text, 'userId': user_id})
        except ValidationError as e:
            logger.warning(f"Rejected malformed synthesize request: {str(e)}")
            return _error_response('Invalid synthesis request', 400)

        grant = services.usage.check_access(user_id, 'synthesis') if user_id else None

        def finish(response):
            if grant:
                services.usage.record_usage(grant, {'insight_id': response.get('id')})
            if user_id:
                try:
                    thought = services.storage.store_thought(user_id, text, {
                        'insight_id': response.get('id'),
                        'input_method': synth_request.context.input_method
                    })
                    suggestions = (response.get('insights') or {}).get('contentSuggestions')
                    if thought and suggestions:
                        services.storage.store_content_suggestions(thought['id'], suggestions)
                except Exception as e:
                    ErrorHandler.handle_storage_error(e)

        if not body.get('stream'):
            response = services.synthesis.synthesize(synth_request)
            finish(response)
            return jsonify(response)

        def generate():
            for record in services.synthesis.stream_events(synth_request):
                if record['type'] == EventType.COMPLETE.value:
                    finish(record['data'])
                yield f"data: {json.dumps(record)}\n\n"

        return Response(
            generate(),
            mimetype='text/event-stream',
            headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
        )

    @app.route('/research/claude', methods=['POST'])
    def claude_research():
        body = request.get_json(silent=True) or {}
        user_id = require_user_id()
        grant = services.usage.check_access(user_id, 'claude_query')

        organization = services.storage.get_organization(grant.organization_id) or {}
        research = services.research.claude_research(
            topic=body.get('topic'),
            niche=body.get('niche') or organization.get('niche'),
            research_type=body.get('researchType', 'deep_analysis'),
            custom_prompt=body.get('customPrompt')
        )
        services.usage.record_usage(grant, {'research_type': research['research_type'], 'topic': research['topic']})
        return jsonify({'success': True, 'research': research, 'usage': grant.to_dict()})

    @app.route('/research/perplexity', methods=['POST'])
    def perplexity_research():
        body = request.get_json(silent=True) or {}
        user_id = require_user_id()
        grant = services.usage.check_access(user_id, 'perplexity_query')

        organization = services.storage.get_organization(grant.organization_id) or {}
        research = services.research.perplexity_research(
            topic=body.get('topic'),
            niche=body.get('niche') or organization.get('niche'),
            query_type=body.get('queryType', 'trend_verification')
        )
        services.usage.record_usage(grant, {'query_type': research['query_type'], 'topic': body.get('topic')})
        return jsonify({'success': True, 'research': research, 'usage': grant.to_dict()})

    @app.route('/trending', methods=['GET'])
    def list_trending():
        user_id = require_user_id()
        organization_id = require_organization_id(user_id)
        topics = services.trending.list_topics(
            organization_id,
            source=request.args.get('source'),
            min_score=request.args.get('minScore', type=float),
            timeframe=request.args.get('timeframe'),
            limit=request.args.get('limit', type=int)
        )
        return jsonify({'topics': topics})

    @app.route('/trending/insights', methods=['GET'])
    def trending_insights():
        user_id = require_user_id()
        return jsonify(services.trending.insights(require_organization_id(user_id)))

    @app.route('/trending/<topic_id>', methods=['GET'])
    def trending_topic(topic_id):
        require_user_id()
        return jsonify({'topic': services.trending.get_topic(topic_id)})

    @app.route('/trending/<topic_id>/research', methods=['POST'])
    def research_trending_topic(topic_id):
        user_id = require_user_id()
        grant = services.usage.check_access(user_id, 'claude_query')

        organization = services.storage.get_organization(grant.organization_id) or {}
        topic = services.trending.research_topic(topic_id, organization.get('niche'))
        services.usage.record_usage(grant, {'research_type': 'trend_forecast', 'topic': topic.get('topic')})
        return jsonify({'success': True, 'topic': topic, 'usage': grant.to_dict()})

    @app.route('/content/generate', methods=['POST'])
    def generate_content():
        body = request.get_json(silent=True) or {}
        user_id = require_user_id()
        grant = services.usage.check_access(user_id, 'content_generation')

        result = services.content.generate(
            user_id,
            body.get('thoughtId'),
            body.get('platform'),
            content_type=body.get('contentType', 'post'),
            tone=body.get('tone', 'professional'),
            length=body.get('length', 'medium'),
            target_audience=body.get('targetAudience', 'general')
        )
        services.usage.record_usage(grant, {'thought_id': body.get('thoughtId'), 'platform': body.get('platform')})
        return jsonify(result)

    @app.route('/content/multiply', methods=['POST'])
    def multiply_content():
        body = request.get_json(silent=True) or {}
        user_id = require_user_id()
        grant = services.usage.check_access(user_id, 'content_generation')

        result = services.content.multiply(
            user_id,
            grant.organization_id,
            sanitize_input(body.get('originalInput') or ''),
            body.get('contentTypes') or [],
            target_audience=body.get('targetAudience', 'general'),
            tone=body.get('tone', 'professional'),
            brand_voice=body.get('brandVoice', 'helpful and informative')
        )
        services.usage.record_usage(grant, {'content_types': body.get('contentTypes')})
        return jsonify(result)

    @app.route('/transcribe', methods=['POST'])
    async def transcribe():
        upload = request.files.get('audio')
        if upload is None:
            return _error_response('No audio file provided', 400)

        transcription = await services.audio.transcribe(upload.read(), upload.mimetype)
        return jsonify({'success': True, 'transcription': transcription})

    @app.route('/upload', methods=['POST'])
    def upload_file():
        upload = request.files.get('file')
        if upload is None:
            return _error_response('No file provided', 400)

        raw = upload.read()
        check = validate_file_upload(upload.filename or '', len(raw), upload.mimetype)
        if not check.is_valid:
            return _error_response(check.error, 400)

        try:
            text = raw.decode('utf-8')
        except UnicodeDecodeError:
            return _error_response('File must be UTF-8 text', 400)

        result = validate_file_content(text)
        if not result.is_valid:
            return _error_response(result.error, 400)
        return jsonify({'success': True, 'content': result.content, 'filename': upload.filename})

    @app.route('/thoughts', methods=['GET'])
    def list_thoughts():
        user_id = require_user_id()
        limit = min(request.args.get('limit', default=20, type=int), 100)
        return jsonify({'thoughts': services.storage.search_thoughts(user_id, limit=limit)})

    @app.route('/billing/checkout', methods=['POST'])
    def checkout():
        body = request.get_json(silent=True) or {}
        require_user_id()
        try:
            url = services.billing.create_checkout_session(body.get('tier', ''), _bearer_token())
        except AppError as e:
            if e.status_code == 400:
                raise
            return _error_response(ErrorHandler.handle_billing_error(e), e.status_code)
        return jsonify({'url': url})

    @app.route('/billing/portal', methods=['POST'])
    def portal():
        require_user_id()
        try:
            url = services.billing.create_portal_session(_bearer_token())
        except AppError as e:
            return _error_response(ErrorHandler.handle_billing_error(e), e.status_code)
        return jsonify({'url': url})

    return app
