"""
Flask application exposing the portfolio content API.
"""
import logging
from datetime import datetime
from typing import Optional

from flask import Flask, jsonify, request

from .services.config_service import ConfigService
from .services.content_service import ContentService
from .services.logging_service import LoggingService


class PortfolioFlaskApp:
    """Flask application for portfolio content. Served over TLS by ServerBootstrapper."""

    def __init__(self, config_service: ConfigService, content_service: ContentService,
                 logging_service: Optional[LoggingService] = None):
        self.app = Flask(__name__)
        self.config_service = config_service
        self.config = config_service.get_config()
        self.content_service = content_service
        self.logging_service = logging_service
        self.logger = logging.getLogger(__name__)

        # set by PortfolioApplication once the bootstrapper exists
        self.bootstrapper = None

        self._setup_routes()
        self._setup_error_handlers()
        self._setup_security_headers()

    def _setup_routes(self):
        """Set up API routes."""

        @self.app.route('/', methods=['GET'])
        def index():
            return jsonify({'message': 'Portfolio API is running'})

        @self.app.route('/health', methods=['GET'])
        def health_check():
            health_status = {
                'status': 'healthy',
                'service': 'portfolio-service',
                'timestamp': datetime.now().isoformat()
            }
            if self.bootstrapper is not None:
                health_status['bootstrap_state'] = self.bootstrapper.state.value
            if self.logging_service:
                health_status['logging'] = self.logging_service.get_health_status()
            return jsonify(health_status)

        @self.app.route('/api/profile', methods=['GET'])
        def get_profile():
            profile = self.content_service.get_profile()
            if profile is None:
                return jsonify({
                    'error': 'Profile not found',
                    'message': 'No profile has been created yet'
                }), 404
            return jsonify({'profile': profile.to_dict()})

        @self.app.route('/api/profile', methods=['PUT'])
        def update_profile():
            data = request.get_json(silent=True)
            if not isinstance(data, dict) or not data:
                return jsonify({
                    'error': 'Invalid request',
                    'message': 'A JSON object with profile fields is required'
                }), 400

            profile = self.content_service.update_profile(data)
            if profile is None:
                return jsonify({
                    'error': 'Failed to update profile',
                    'message': 'Could not save profile to database'
                }), 500
            return jsonify({'message': 'Profile updated successfully', 'profile': profile.to_dict()})

        @self.app.route('/api/projects', methods=['GET'])
        def get_projects():
            featured_only = request.args.get('featured', 'false').lower() == 'true'
            projects = self.content_service.get_projects(featured_only=featured_only)
            return jsonify({
                'projects': [p.to_dict() for p in projects],
                'count': len(projects)
            })

        @self.app.route('/api/projects', methods=['POST'])
        def create_project():
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({
                    'error': 'Invalid request',
                    'message': 'A JSON object is required'
                }), 400

            try:
                project = self.content_service.create_project(data)
            except ValueError as e:
                return jsonify({'error': 'Invalid request', 'message': str(e)}), 400

            if project is None:
                return jsonify({
                    'error': 'Failed to create project',
                    'message': 'Could not save project to database'
                }), 500
            return jsonify({'message': 'Project created successfully', 'project': project.to_dict()}), 201

        @self.app.route('/api/projects/<int:project_id>', methods=['GET'])
        def get_project(project_id):
            project = self.content_service.get_project(project_id)
            if project is None:
                return jsonify({
                    'error': 'Project not found',
                    'message': f'Project with ID {project_id} does not exist'
                }), 404
            return jsonify({'project': project.to_dict()})

        @self.app.route('/api/projects/<int:project_id>', methods=['PUT'])
        def update_project(project_id):
            data = request.get_json(silent=True)
            if not isinstance(data, dict) or not data:
                return jsonify({
                    'error': 'Invalid request',
                    'message': 'A JSON object with project fields is required'
                }), 400

            try:
                project = self.content_service.update_project(project_id, data)
            except ValueError as e:
                return jsonify({'error': 'Invalid request', 'message': str(e)}), 400

            if project is None:
                return jsonify({
                    'error': 'Project not found',
                    'message': f'Project with ID {project_id} does not exist'
                }), 404
            return jsonify({'message': 'Project updated successfully', 'project': project.to_dict()})

        @self.app.route('/api/projects/<int:project_id>', methods=['DELETE'])
        def delete_project(project_id):
            if not self.content_service.delete_project(project_id):
                return jsonify({
                    'error': 'Project not found',
                    'message': f'Project with ID {project_id} does not exist'
                }), 404
            return jsonify({'message': 'Project deleted successfully', 'project_id': project_id})

    def _setup_error_handlers(self):
        """Set up error handlers."""

        @self.app.errorhandler(404)
        def not_found(error):
            return jsonify({
                'error': 'Not found',
                'message': 'The requested endpoint does not exist'
            }), 404

        @self.app.errorhandler(405)
        def method_not_allowed(error):
            return jsonify({
                'error': 'Method not allowed',
                'message': 'The requested method is not allowed for this endpoint'
            }), 405

        @self.app.errorhandler(500)
        def internal_error(error):
            self.logger.error(f"Internal server error: {error}")
            if self.logging_service:
                self.logging_service.track_error(
                    getattr(error, 'original_exception', None) or Exception(str(error)),
                    {'path': request.path, 'method': request.method}
                )
            return jsonify({
                'error': 'Internal server error',
                'message': 'An unexpected error occurred'
            }), 500

    def _setup_security_headers(self):
        """Set up security headers for all responses."""

        @self.app.after_request
        def add_security_headers(response):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'DENY'
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            response.headers.pop('Server', None)
            return response

    def get_app(self) -> Flask:
        """Get the Flask application instance."""
        return self.app
