"""
应用配置
支持从环境变量读取配置
"""
import os
import secrets

from dotenv import load_dotenv

load_dotenv()

# 获取 backend 目录的绝对路径
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _split_env(name: str, default: str):
    return [part.strip() for part in os.environ.get(name, default).split(',') if part.strip()]


class Config:
    """基础配置"""

    # ==================== 安全配置 ====================
    # 使用环境变量或生成随机密钥（每次重启会变化）
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

    # 供应商凭证加密密钥（Fernet）
    CREDENTIAL_ENCRYPTION_KEY = os.environ.get('CREDENTIAL_ENCRYPTION_KEY')

    # 客户端与管理员 API Key（开发环境下客户端 Key 可选）
    API_KEY = os.environ.get('API_KEY')
    ADMIN_API_KEY = os.environ.get('ADMIN_API_KEY')

    # ==================== 数据库配置 ====================
    DATABASE_URL = os.environ.get('DATABASE_URL')
    if DATABASE_URL:
        SQLALCHEMY_DATABASE_URI = DATABASE_URL
    else:
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{os.path.join(BASE_DIR, "toll_sync.db")}'

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ==================== CORS 配置 ====================
    CORS_ORIGINS = _split_env('CORS_ORIGINS', 'http://localhost:3000,http://127.0.0.1:3000')

    # ==================== 日志配置 ====================
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')  # 可选的日志文件路径

    # ==================== 收费供应商配置 ====================
    # 供应商请求超时（秒）
    TOLL_REQUEST_TIMEOUT = float(os.environ.get('TOLL_REQUEST_TIMEOUT', '30'))

    # 供应商目录地址，初始化 toll_providers 表时使用
    TOLL_PROVIDER_ENDPOINTS = {
        'pcmiler': os.environ.get('PCMILER_BASE_URL', 'https://api.pcmiler.com/v1'),
        'ipass': os.environ.get('IPASS_BASE_URL', 'https://api.illinoistollway.com/v1'),
        'bestpass': os.environ.get('BESTPASS_BASE_URL', 'https://api.bestpass.com/v2'),
        'prepass': os.environ.get('PREPASS_BASE_URL', 'https://api.prepass.com/v1'),
    }

    # ==================== 同步配置 ====================
    # 处于 syncing 状态超过该时长（秒）的账户视为过期
    SYNC_STALE_TIMEOUT = int(os.environ.get('SYNC_STALE_TIMEOUT', '300'))

    # 同步队列允许写入的表（逗号分隔）
    SYNC_QUEUE_TABLES = _split_env('SYNC_QUEUE_TABLES', 'vehicles,drivers')

    # 列表接口的最大分页大小
    MAX_PAGE_SIZE = 200

    @classmethod
    def get_cors_config(cls):
        """获取 CORS 配置"""
        return {
            "origins": cls.CORS_ORIGINS,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "X-API-Key", "X-Company-ID", "Authorization"],
            "supports_credentials": True,
        }


class DevelopmentConfig(Config):
    """开发环境配置"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """生产环境配置"""
    DEBUG = False
    LOG_LEVEL = 'WARNING'

    @classmethod
    def validate(cls):
        """验证生产环境必要配置，返回问题列表"""
        errors = []

        if not os.environ.get('SECRET_KEY'):
            errors.append('SECRET_KEY 环境变量未设置')

        if not os.environ.get('CREDENTIAL_ENCRYPTION_KEY'):
            errors.append('CREDENTIAL_ENCRYPTION_KEY 环境变量未设置（将从 SECRET_KEY 派生密钥）')

        if not os.environ.get('API_KEY'):
            errors.append('API_KEY 环境变量未设置（客户端请求不做认证）')

        return errors


class TestingConfig(Config):
    """测试环境配置"""
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    CREDENTIAL_ENCRYPTION_KEY = None
    API_KEY = None
    ADMIN_API_KEY = 'test-admin-key'
    TOLL_REQUEST_TIMEOUT = 5.0
    LOG_LEVEL = 'WARNING'


# 配置映射
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """根据环境变量获取配置类"""
    env = os.environ.get('FLASK_ENV', 'development')
    return config.get(env, config['default'])
